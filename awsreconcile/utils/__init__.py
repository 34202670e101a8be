"""Utility helpers for awsreconcile."""
