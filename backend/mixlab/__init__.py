"""MixLab Studio booking backend."""
