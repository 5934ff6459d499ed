"""
ERD Backend - Stateful project manager and the FastAPI app serving it.
"""
