"""Market-making strategy validation, estimation and lifecycle."""
