from pathlib import Path
import dotenv
import logging
import os
from typing import Optional
from dataclasses import dataclass


ROOT = Path(__file__).parent.parent

dotenv.load_dotenv(ROOT / '.env')

# Logging configuration
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name; its level comes from the `librarian` logger"""
    return logging.getLogger(name)


# Remote repository settings
GITHUB_API_URL = 'https://api.github.com'
DEFAULT_BASE_BRANCH = 'main'
DEFAULT_REQUEST_TIMEOUT = 30

# Local mirror settings
DEFAULT_STATIC_PATH = 'static'
METADATA_FILENAME = 'metadata.json'

# Metadata cache: entries idle for longer than this are evicted, checked on the same interval
METADATA_CACHE_EXPIRATION_MINUTES = 30


@dataclass
class LibrarianConfig:
    """Centralized configuration for the content library service"""
    repo: str
    token: str
    secret: Optional[str] = None
    static_path: str = DEFAULT_STATIC_PATH
    base_branch: str = DEFAULT_BASE_BRANCH
    origin: Optional[str] = None
    api_url: str = GITHUB_API_URL
    timeout: int = DEFAULT_REQUEST_TIMEOUT
    cache_expiration_minutes: float = METADATA_CACHE_EXPIRATION_MINUTES
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    @classmethod
    def from_environment(cls) -> 'LibrarianConfig':
        """
        Create configuration from environment variables.

        Returns:
            LibrarianConfig instance

        Raises:
            ValueError: If required environment variables are missing
        """
        repo = os.getenv('GITHUB_REPO')
        token = os.getenv('GITHUB_PERSONAL_TOKEN')

        missing_vars = []
        if not repo:
            missing_vars.append('GITHUB_REPO')
        if not token:
            missing_vars.append('GITHUB_PERSONAL_TOKEN')

        if missing_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_vars)}")

        expiration = os.getenv('METADATA_CACHE_EXPIRATION_MINUTES')
        try:
            cache_expiration_minutes = float(expiration) if expiration else METADATA_CACHE_EXPIRATION_MINUTES
        except ValueError:
            raise ValueError(f"Invalid METADATA_CACHE_EXPIRATION_MINUTES: {expiration}")

        return cls(
            repo=repo,  # type: ignore - validated above
            token=token,  # type: ignore - validated above
            secret=os.getenv('GITHUB_SECRET'),
            static_path=os.getenv('STATIC_PATH', DEFAULT_STATIC_PATH),
            base_branch=os.getenv('BASE_BRANCH', DEFAULT_BASE_BRANCH),
            origin=os.getenv('ORIGIN'),
            cache_expiration_minutes=cache_expiration_minutes,
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_file=os.getenv('LOG_FILE'),
        )

    @property
    def owner(self) -> str:
        """Repository owner, used to qualify pull request heads"""
        return self.repo.split('/')[0]

    @property
    def main_ref(self) -> str:
        return f'refs/heads/{self.base_branch}'
