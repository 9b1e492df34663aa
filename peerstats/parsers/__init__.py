"""Per-subsystem parsers. Each returns partial peer records keyed by peer key."""
