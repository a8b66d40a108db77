class DistributedQueryError(Exception):
    """Base exception for distributed_query."""

class ConfigurationError(DistributedQueryError):
    pass

class ConnectionFailure(DistributedQueryError):
    pass

class QueryExecutionError(DistributedQueryError):
    pass

class QueryTimeoutError(QueryExecutionError):
    pass

class ExportError(DistributedQueryError):
    pass
