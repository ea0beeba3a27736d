"""
EcoQuest gamification core

Points, levels, streaks, badges and content unlock gates for the EcoQuest
learning client, plus the adapters binding them to the hosted backend.
"""

__version__ = "0.1.0"
