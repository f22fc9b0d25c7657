"""Discord client, helpers and embed builders for BobbyBot."""
