"""Game domain services: matching, scoring, round lifecycle and timers.

This package contains the round/game state machine and the logic it is
built on. HTTP routes and the scheduler call into it; transport concerns
(JSON, Socket.IO) stay outside.
"""
