"""Services package for the streak system."""
