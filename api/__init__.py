"""HTTP surface of the story workflow gateway."""
