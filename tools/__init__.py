"""Remote-control commands and search built on the TV connection."""
