"""
Base Component - Common base class for the reporter's pipeline stages
"""
import logging

from ..config import Settings, settings as default_settings


class BaseComponent:
    """
    Base class for aggregator, delivery and recovery stages.
    Provides a named logger and the shared settings handle.
    """
    
    def __init__(self, name: str, description: str = "", config: Settings = None):
        """
        Initialize the base component.
        
        Args:
            name: Unique name for the component
            description: Description of the component's purpose
            config: Settings instance; defaults to the module-level settings
        """
        self.name = name
        self.description = description
        self.settings = config or default_settings
        self.logger = logging.getLogger(f"bvt_reporter.{name}")
    
    def log_info(self, message: str):
        """Log an info message"""
        self.logger.info(f"[{self.name}] {message}")
    
    def log_warning(self, message: str):
        """Log a warning message"""
        self.logger.warning(f"[{self.name}] {message}")
    
    def log_error(self, message: str):
        """Log an error message"""
        self.logger.error(f"[{self.name}] {message}")
    
    def log_debug(self, message: str):
        """Log a debug message"""
        self.logger.debug(f"[{self.name}] {message}")
    
    def __repr__(self):
        return f"<{self.__class__.__name__}(name='{self.name}')>"
