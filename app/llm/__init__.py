"""AI analysis of content notes."""
