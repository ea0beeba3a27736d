"""Session, service and wiring layer on top of the gamification core"""
