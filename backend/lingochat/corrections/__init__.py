"""Peer corrections of chat messages.

Services:
    - CorrectionService: create/list/delete with party and authorship rules.
"""
