"""
Common utilities shared by the calendar analytics service: structured
logging and the HTTP error hierarchy.
"""
