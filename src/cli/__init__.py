"""Operator command line for practice analytics."""
