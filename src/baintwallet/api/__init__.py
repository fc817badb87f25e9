"""HTTP surface for Baintwallet: SMS webhook and internal wallet API."""
