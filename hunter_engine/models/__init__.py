"""Pydantic models for the progression engine"""
