# tokenwatch/core/exceptions.py

class TokenwatchError(Exception):
    """Base exception for all application errors"""
    pass

class ServiceError(TokenwatchError):
    """Base exception for service layer errors"""
    pass

class RepositoryError(TokenwatchError):
    """Base exception for repository layer errors"""
    pass

class AdapterError(TokenwatchError):
    """Base exception for ledger adapter errors (transport, RPC or payload)"""
    pass

class ConfigurationError(TokenwatchError):
    """Base exception for configuration errors"""
    pass
