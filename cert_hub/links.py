import uritemplate


def expand_verify_url(verify_url, domain, content_hash):
    # type: (str, str, str) -> str
    """
    Build the public verification link for a certificate (the QR code target).

    Template variables ``{domain}`` and ``{content_hash}`` are substituted when
    present, otherwise the content hash is appended to the URL.

    :param verify_url: Base URL or URI template
    :param domain: Public domain of this deployment
    :param content_hash: Content hash of the certificate
    :return: Absolute verification URL
    """
    template_vars = {"domain": domain, "content_hash": content_hash}

    if "{" in verify_url and "}" in verify_url:
        return uritemplate.expand(verify_url, template_vars)

    if not verify_url.endswith("/") and not verify_url.endswith("="):
        verify_url += "/"
    return verify_url + content_hash
