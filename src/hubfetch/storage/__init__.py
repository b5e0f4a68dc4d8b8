"""Remote storage access for hubfetch."""
