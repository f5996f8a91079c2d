"""Murph: documents read aloud through a text-to-speech gateway."""
