"""Pumpflow - PumpPortal new-token feed proxy"""

__version__ = "0.1.0"

def main() -> None:
    """Main entry point for the application"""
    import uvicorn
    from .config import PumpflowConfig

    config = PumpflowConfig.from_env()
    uvicorn.run("pumpflow.app:app", host=config.host, port=config.port)
