from __future__ import annotations
import logging
import time
from typing import Callable, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from .candidates import DocumentSnapshot
from .errors import ConnectivityError
from .images import USER_AGENT

logger = logging.getLogger("menuboard.snapshot")

# One pass over the DOM: text, computed background and box for every element.
# Text is clipped at arguments[0] chars; callers only care whether it is short.
SNAPSHOT_JS = """
var limit = arguments[0];
return Array.prototype.map.call(document.querySelectorAll('*'), function (el) {
  var r = el.getBoundingClientRect();
  var text = el.textContent || '';
  return {
    text: text.length > limit ? text.slice(0, limit) : text,
    background: window.getComputedStyle(el).backgroundImage,
    top: r.top, left: r.left, width: r.width, height: r.height
  };
});
"""


def chrome_options(chrome_path: Optional[str] = None) -> Options:
    options = Options()
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--window-size=1280,4000")
    options.add_argument(f"--user-agent={USER_AGENT}")
    if chrome_path:
        options.binary_location = chrome_path
    return options


class SeleniumRenderer:
    """
    Renders the channel page in headless Chrome and pulls a DocumentSnapshot.

    "Content settled" = the first post thumbnail (or any image) is present,
    followed by a fixed settle_seconds pause for lazy-loaded posts.
    """

    def __init__(
        self,
        settle_seconds: float = 5.0,
        page_timeout: int = 30,
        chrome_path: Optional[str] = None,
        text_limit: int = 500,
        driver_factory: Optional[Callable[[], object]] = None,
        settle_selector: str = "div.wrap_fit_thumb, img",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settle_seconds = settle_seconds
        self.page_timeout = page_timeout
        self.text_limit = text_limit
        self.settle_selector = settle_selector
        self.sleep = sleep
        self.driver_factory = driver_factory or (lambda: webdriver.Chrome(options=chrome_options(chrome_path)))

    def snapshot(self, url: str) -> DocumentSnapshot:
        logger.info("Rendering %s", url)
        try:
            driver = self.driver_factory()
        except WebDriverException as e:
            raise ConnectivityError(f"could not start browser: {e.msg or e}") from e

        try:
            driver.set_page_load_timeout(self.page_timeout)
            driver.get(url)
            try:
                WebDriverWait(driver, self.page_timeout).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, self.settle_selector))
                )
            except TimeoutException:
                logger.warning("No image appeared within %ss; snapshotting anyway", self.page_timeout)
            self.sleep(self.settle_seconds)
            records = driver.execute_script(SNAPSHOT_JS, self.text_limit) or []
        except WebDriverException as e:
            raise ConnectivityError(f"rendering {url} failed: {e.msg or e}") from e
        finally:
            driver.quit()

        logger.info("Snapshot holds %d element(s)", len(records))
        return DocumentSnapshot.from_records(records)
