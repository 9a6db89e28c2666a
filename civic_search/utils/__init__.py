"""Helper utilities"""
