from esign_app.testing_dependencies import (  # noqa: F401
    client,
    credentials,
    fake_docusign,
    rsa_private_key_pem,
    test_settings,
)
