"""authcore: passkey ceremonies, protocol artifacts and consent."""

__version__ = "0.1.0"
