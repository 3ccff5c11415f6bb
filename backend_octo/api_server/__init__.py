"""
API server package — HTTP status API for the Octo agent.
"""
