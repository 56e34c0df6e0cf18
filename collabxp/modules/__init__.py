"""Feature modules of the collabxp engine."""
