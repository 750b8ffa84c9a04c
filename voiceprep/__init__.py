"""
VoicePrep - Spoken Mock Interview Platform

Runs a simulated spoken job interview: the interviewer speaks each question,
listens to the candidate, scores answers, asks the occasional follow-up and
closes with a feedback summary.
"""

__version__ = "0.1.0"
__author__ = "VoicePrep Team"
