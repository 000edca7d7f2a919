"""Process lifecycle: data model, read-time calculators, listing engine and service."""
