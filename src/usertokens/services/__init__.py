"""Services built on the token core."""
