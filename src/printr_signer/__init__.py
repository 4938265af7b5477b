"""printr-signer: local signing-session broker and encrypted wallet keystore."""

__version__ = "0.1.0"
