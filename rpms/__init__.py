"""Core alerting logic for remote patient monitoring.

This package contains vital-sign threshold evaluation, alert dispatch and
reminder scheduling, isolated from the menu, storage and transport layers
for easy testing and reasoning.
"""
