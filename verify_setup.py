"""
Setup verification script for the Words Wall backend.
Checks all dependencies and services are properly configured.
"""
import asyncio
import sys
import os
from typing import List, Tuple

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_status(message: str, status: bool):
    """Print colored status message."""
    symbol = f"{GREEN}✓{RESET}" if status else f"{RED}✗{RESET}"
    print(f"{symbol} {message}")


async def check_python_version() -> bool:
    """Check Python version is 3.11+."""
    version = sys.version_info
    if version.major == 3 and version.minor >= 11:
        print_status(f"Python version: {version.major}.{version.minor}.{version.micro}", True)
        return True
    else:
        print_status(f"Python version {version.major}.{version.minor} (requires 3.11+)", False)
        return False


async def check_dependencies() -> bool:
    """Check if required packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic_settings",
        "sqlalchemy",
        "asyncpg",
        "alembic",
        "httpx",
        "multipart",
    ]

    all_installed = True
    for package in required_packages:
        try:
            __import__(package)
            print_status(f"Package '{package}' installed", True)
        except ImportError:
            print_status(f"Package '{package}' missing", False)
            all_installed = False

    return all_installed


async def check_env_file() -> bool:
    """Check if .env file exists."""
    if os.path.exists(".env"):
        print_status(".env file exists", True)
        return True
    else:
        print_status(".env file missing (defaults from words_wall/config.py apply)", False)
        return False


async def check_ollama() -> bool:
    """Check if Ollama is running and has the generation model."""
    try:
        from words_wall.services.llm_client import OllamaWordClient

        llm = OllamaWordClient()
        model_names = await llm.list_models()
        if model_names is None:
            print_status(f"Ollama service not reachable at {llm.base_url}", False)
            print(f"  {YELLOW}Make sure Ollama is installed and running{RESET}")
            print(f"  {YELLOW}Install from: https://ollama.ai/{RESET}")
            return False

        print_status("Ollama service is running", True)
        family = llm.model.split(":")[0]
        has_llm = any(name == llm.model or name.startswith(family) for name in model_names)
        print_status(f"LLM model ({llm.model}): {'Found' if has_llm else 'Missing'}", has_llm)
        if not has_llm:
            print(f"  {YELLOW}Run: ollama pull {llm.model}{RESET}")
        return has_llm

    except Exception as e:
        print_status(f"Ollama check failed: {str(e)}", False)
        return False


async def check_postgres() -> bool:
    """Check if PostgreSQL is running and the words table is reachable."""
    try:
        from sqlalchemy import text

        from words_wall.database import close_db, engine

        async with engine.connect() as conn:
            exists = await conn.scalar(text("SELECT to_regclass('public.words') IS NOT NULL"))
        await close_db()

        print_status("PostgreSQL connection successful", True)
        print_status(
            f"words table: {'Present' if exists else 'Missing (run: alembic upgrade head)'}",
            bool(exists),
        )
        return bool(exists)

    except Exception as e:
        print_status(f"PostgreSQL connection failed: {str(e)}", False)
        print(f"  {YELLOW}Check DATABASE_URL and that PostgreSQL is running{RESET}")
        return False


async def main():
    """Run all verification checks."""
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}Words Wall Backend - Setup Verification{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

    checks: List[Tuple[str, callable]] = [
        ("Python Version", check_python_version),
        ("Dependencies", check_dependencies),
        ("Environment File", check_env_file),
        ("PostgreSQL", check_postgres),
        ("Ollama + Model", check_ollama),
    ]

    results = []

    for check_name, check_func in checks:
        print(f"\n{BLUE}Checking {check_name}...{RESET}")
        try:
            result = await check_func()
            results.append(result)
        except Exception as e:
            print_status(f"Error during check: {str(e)}", False)
            results.append(False)

    # Summary
    print(f"\n{BLUE}{'='*60}{RESET}")
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"{GREEN}✓ All checks passed! ({passed}/{total}){RESET}")
        print(f"\n{GREEN}You're ready to run the backend:{RESET}")
        print(f"  python -m words_wall.main")
        print(f"  or")
        print(f"  uvicorn words_wall.main:app --reload")
    else:
        print(f"{RED}✗ Some checks failed ({passed}/{total} passed){RESET}")
        print(f"\n{YELLOW}Please fix the issues above before running the backend.{RESET}")
        sys.exit(1)

    print(f"{BLUE}{'='*60}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
