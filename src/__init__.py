"""AMC practice analytics."""
