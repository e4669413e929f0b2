"""Declarative base shared by all Ticketing Service models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
