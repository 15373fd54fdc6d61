"""Source discovery, fetching, decoding and merging."""
