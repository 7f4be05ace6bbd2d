"""Corre points wallet service."""
