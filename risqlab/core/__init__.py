"""RisqLab core infrastructure: configuration, logging, database, ids."""
