"""Request handling that sits in front of the pipeline."""
