"""Shared configuration, logging, exceptions and data model."""
