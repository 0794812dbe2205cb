"""Slash command definitions and reply messages for a Discord presence bot."""