"""Route and fix data shared by the unit tests."""
