"""
Command line entry point: opens the browser on the application URL, walks
the form and writes the run report as JSON.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

from playwright.sync_api import Browser, BrowserContext, Page

from .cache import JsonStructureCache
from .config import load_config, setup_logging
from .driver import PlaywrightDriver
from .navigator import StepNavigator
from .values import KeywordValueResolver

logger = logging.getLogger(__name__)


def setup_browser(headless: bool, storage_state: Optional[str] = None,
                  navigation_timeout_ms: int = 45000) -> Tuple[Optional[Page], Optional[BrowserContext], Optional[Browser], Optional[Any]]:
    from playwright.sync_api import sync_playwright
    playwright_instance, browser_instance, browser_context_instance = None, None, None
    try:
        playwright_instance = sync_playwright().start()
        browser_instance = playwright_instance.chromium.launch(
            headless=headless,
            args=['--no-sandbox', '--disable-dev-shm-usage', '--start-maximized'])
        browser_context_instance = browser_instance.new_context(
            viewport={'width': 1366, 'height': 768},
            locale='es-CL',
            storage_state=storage_state)
        browser_context_instance.set_default_navigation_timeout(navigation_timeout_ms)
        page = browser_context_instance.new_page()
        logger.info("Browser setup completed.")
        return page, browser_context_instance, browser_instance, playwright_instance
    except Exception as e:
        logger.error(f"Error setting up browser: {e}", exc_info=True)
        close_browser(browser_context_instance, browser_instance, playwright_instance)
        return None, None, None, None


def close_browser(browser_context: Optional[BrowserContext], browser_instance: Optional[Browser],
                  playwright_instance: Optional[Any]) -> None:
    if browser_context:
        try:
            browser_context.close()
        except Exception as e_ctx_close:
            logger.warning(f"Exception during browser_context.close(): {e_ctx_close}")
    if browser_instance:
        try:
            if browser_instance.is_connected():
                browser_instance.close()
        except Exception as e_browser_close:
            logger.warning(f"Error closing browser instance: {e_browser_close}")
    if playwright_instance:
        try:
            playwright_instance.stop()
            logger.info("Playwright instance stopped.")
        except Exception as e_pw_stop:
            logger.warning(f"Error stopping Playwright instance: {e_pw_stop}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portal-autofill",
        description="Walk a multi-step portal application form and complete its fields without submitting it.")
    parser.add_argument("url", help="Application form (or draft listing) URL")
    parser.add_argument("--values", required=True, help="JSON keyword table used to resolve field values")
    parser.add_argument("--config", help="JSON file overriding default timeouts and settings")
    parser.add_argument("--cache", help="JSON structure cache file")
    parser.add_argument("--storage-state", help="Playwright storage state with an authenticated session")
    parser.add_argument("--report", default="run_report.json", help="Where to write the JSON run report")
    parser.add_argument("--log-file", default="portal_autofill.log")
    parser.add_argument("--headless", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    config = load_config(args.config)
    resolver = KeywordValueResolver.from_json(args.values)
    cache = JsonStructureCache(args.cache) if args.cache else None

    page, browser_context, browser_instance, playwright_instance = setup_browser(
        args.headless, args.storage_state, config["navigation_timeout_ms"])
    if not page:
        logger.critical("Failed to initialize browser. Exiting.")
        return 2

    try:
        page.goto(args.url, wait_until="domcontentloaded")
        driver = PlaywrightDriver(page, action_timeout_ms=config["action_timeout_ms"])
        result = StepNavigator(driver, resolver, config, cache).run()
        Path(args.report).write_text(result.to_json(), encoding="utf-8")
        logger.info(f"\n{'='*20} RUN RESULT {'='*20}")
        logger.info(f"succeeded={result.succeeded} | {result.message} | report: {args.report}")
        for error in result.errors:
            logger.warning(f"  error: {error}")
        return 0 if result.succeeded else 1
    except Exception as e_main:
        logger.critical(f"Critical unhandled exception in main execution block: {e_main}", exc_info=True)
        return 2
    finally:
        logger.info("Initiating cleanup: closing browser and Playwright...")
        close_browser(browser_context, browser_instance, playwright_instance)


if __name__ == "__main__":
    sys.exit(main())
