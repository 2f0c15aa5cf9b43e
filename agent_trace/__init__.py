"""Compile agent session transcripts into compact, cost-annotated timelines."""
