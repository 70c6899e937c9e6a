import hashlib

def hash_value(value: str) -> str:
    # SHA-256 is fine for fingerprinting tokens and device signatures
    return hashlib.sha256(value.encode("utf-8")).hexdigest()

def device_fingerprint(user_agent=None, accept_language=None, platform=None) -> str:
    """Stable identifier for a browser/device from the headers it sends."""
    parts = [user_agent or "", accept_language or "", platform or ""]
    return hash_value("|".join(parts))

def describe_device(user_agent) -> str:
    """Readable descriptor such as 'Chrome on Windows (Desktop)'."""
    ua = user_agent or ""

    if "Firefox" in ua:
        browser = "Firefox"
    elif "Edg" in ua:
        browser = "Edge"
    elif "OPR" in ua or "Opera" in ua:
        browser = "Opera"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Safari" in ua:
        browser = "Safari"
    else:
        browser = "Unknown Browser"

    # iOS and Android user agents also mention Mac OS / Linux, so check them first
    if "iPhone" in ua or "iPad" in ua:
        os_name = "iOS"
    elif "Android" in ua:
        os_name = "Android"
    elif "Windows" in ua:
        os_name = "Windows"
    elif "Mac OS" in ua:
        os_name = "macOS"
    elif "Linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Unknown OS"

    if "iPad" in ua or "Tablet" in ua:
        device_type = "Tablet"
    elif "Mobile" in ua or "Android" in ua:
        device_type = "Mobile"
    else:
        device_type = "Desktop"

    return f"{browser} on {os_name} ({device_type})"
