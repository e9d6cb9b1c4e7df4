"""Configuration for BiasBrief."""
