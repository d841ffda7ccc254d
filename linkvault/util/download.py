import requests


def download_html(url: str, user_agent: str, timeout: float) -> str:
    """
    Plain HTTP GET of a page. Many sites turn away anything that doesn't look
    like a browser, so send a desktop user agent and the usual Accept headers.
    Non-2xx responses raise requests.HTTPError like any other failure.
    """
    headers = {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
    }
    response = requests.get(url, headers=headers, timeout=timeout, allow_redirects=True)
    response.raise_for_status()
    return response.text
