"""Pure settlement rules — no IO, no framework imports."""
