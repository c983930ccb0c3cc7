"""BoxOffice — order, ticket and payment settlement core for an event marketplace."""

__version__ = "1.0.0"
