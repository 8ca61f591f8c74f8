"""
BOE Monitoring & Analysis System

A pipeline that fetches the daily Boletín Oficial del Estado summary,
analyzes its items against subscriber prompts with an LLM backend and
prepares ranked matches for the notification pipeline.
"""

__version__ = "1.0.0"
__author__ = "BOE Monitor"
