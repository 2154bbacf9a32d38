"""
Headless browser session for BGG pages that only exist as rendered HTML.
"""

import logging
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from ..config import BROWSER_TIMEOUT, CHROMIUM_EXECUTABLE_PATH, HEADLESS_BROWSER, USER_AGENT

logger = logging.getLogger(__name__)


class BrowserSession:
    """
    Scoped headless Chrome session.

    Use as a context manager; the driver is started on entry and always
    quit on exit, including when page extraction raises.
    """

    def __init__(self, headless: bool = HEADLESS_BROWSER, timeout: int = BROWSER_TIMEOUT,
                 executable_path: Optional[str] = CHROMIUM_EXECUTABLE_PATH):
        """
        Initialize the browser session.

        Args:
            headless: Whether to run browser in headless mode
            timeout: Page load and element wait timeout in seconds
            executable_path: Chromium binary to use instead of the default Chrome
        """
        self.headless = headless
        self.timeout = timeout
        self.executable_path = executable_path
        self.driver = None
        self.wait = None

    def setup_driver(self) -> None:
        """Set up the Chrome WebDriver with appropriate options."""
        try:
            chrome_options = Options()

            if self.headless:
                chrome_options.add_argument("--headless")
            if self.executable_path:
                chrome_options.binary_location = self.executable_path

            # Container-friendly flags
            chrome_options.add_argument("--no-sandbox")
            chrome_options.add_argument("--disable-dev-shm-usage")
            chrome_options.add_argument("--disable-gpu")
            chrome_options.add_argument("--window-size=1920,1080")
            chrome_options.add_argument(f"--user-agent={USER_AGENT}")

            chrome_options.add_argument("--disable-blink-features=AutomationControlled")
            chrome_options.add_experimental_option("excludeSwitches", ["enable-automation"])
            chrome_options.add_argument("--disable-extensions")

            self.driver = webdriver.Chrome(options=chrome_options)
            self.driver.set_page_load_timeout(self.timeout)
            self.wait = WebDriverWait(self.driver, self.timeout)

            logger.debug("Chrome WebDriver initialized")

        except Exception as e:
            logger.error(f"Failed to initialize Chrome WebDriver: {e}")
            raise

    def load(self, url: str, wait_css: Optional[str] = None) -> bool:
        """
        Navigate to a URL and wait for the page to render.

        Args:
            url: URL to navigate to
            wait_css: CSS selector that must be present before the page counts as loaded

        Returns:
            True if the page loaded, False on timeout or navigation error
        """
        try:
            logger.info(f"Loading page: {url}")
            self.driver.get(url)
            locator = (By.CSS_SELECTOR, wait_css) if wait_css else (By.TAG_NAME, "body")
            self.wait.until(EC.presence_of_element_located(locator))
            return True
        except TimeoutException:
            logger.warning(f"Page load timeout for {url}")
            return False
        except WebDriverException as e:
            logger.error(f"Error loading {url}: {e}")
            return False

    @property
    def page_source(self) -> str:
        return self.driver.page_source if self.driver else ""

    def select(self, css: str) -> List[Tag]:
        """Run a CSS query against the rendered page."""
        soup = BeautifulSoup(self.page_source, "html.parser")
        return soup.select(css)

    def select_one(self, css: str) -> Optional[Tag]:
        soup = BeautifulSoup(self.page_source, "html.parser")
        return soup.select_one(css)

    def cleanup(self) -> None:
        """Clean up resources."""
        if self.driver:
            try:
                self.driver.quit()
                logger.debug("WebDriver closed")
            except Exception as e:
                logger.warning(f"Error closing WebDriver: {e}")
            finally:
                self.driver = None
                self.wait = None

    def __enter__(self):
        """Context manager entry."""
        self.setup_driver()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.cleanup()
