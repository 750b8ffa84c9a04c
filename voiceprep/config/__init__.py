"""Configuration for VoicePrep."""
