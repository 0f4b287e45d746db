from auth_detector import AuthChallengeDetector


PROMPT = (
    "[msa] First time signing in. Please authenticate now:\n"
    "To sign in, use a web browser to open the page https://www.microsoft.com/link "
    "and use the code AB12CD34 to authenticate.\n"
)


def make_detector(**kw):
    kw.setdefault("link_marker", "microsoft.com/link")
    kw.setdefault("code_keyword", "code")
    kw.setdefault("default_url", "https://www.microsoft.com/link")
    kw.setdefault("buffer_chars", 512)
    return AuthChallengeDetector(**kw)


def test_full_prompt_in_one_delivery():
    det = make_detector()
    challenge = det.observe(PROMPT, operator="<@42>")

    assert challenge is not None
    assert challenge.verification_url == "https://www.microsoft.com/link"
    assert challenge.user_code == "AB12CD34"
    assert challenge.operator == "<@42>"
    assert challenge.complete
    assert det.active
    assert det.current == challenge


def test_prompt_split_across_deliveries():
    det = make_detector()
    cut = PROMPT.index("use the co") + len("use the co")

    assert det.observe(PROMPT[:cut]) is None
    challenge = det.observe(PROMPT[cut:])

    assert challenge is not None
    assert challenge.user_code == "AB12CD34"


def test_code_at_end_of_delivery_waits_for_terminator():
    det = make_detector()
    assert det.observe("open https://www.microsoft.com/link and use the code AB12CD34") is None

    challenge = det.observe(" to authenticate.")
    assert challenge is not None
    assert challenge.user_code == "AB12CD34"


def test_same_code_reported_once_until_clear():
    det = make_detector()
    assert det.observe(PROMPT) is not None
    assert det.observe(PROMPT) is None

    det.clear()
    assert not det.active
    again = det.observe(PROMPT)
    assert again is not None
    assert again.user_code == "AB12CD34"


def test_new_code_replaces_current_challenge():
    det = make_detector()
    det.observe(PROMPT)
    second = det.observe(PROMPT.replace("AB12CD34", "ZZ99YY88"))

    assert second is not None
    assert det.current.user_code == "ZZ99YY88"


def test_malformed_or_partial_prompts_are_ignored():
    samples = [
        "",
        "use the code AB12CD34 to authenticate.",
        "https://www.microsoft.com/link and use the code ab12cd34 now",
        "https://www.microsoft.com/link and use the code AB1 now",
        "https://www.microsoft.com/link and use the code AB12-CD34 now",
    ]
    for text in samples:
        det = make_detector()
        assert det.observe(text) is None, text
        assert not det.active


def test_marker_without_url_falls_back_to_default():
    det = make_detector(default_url="https://example.test/link")
    challenge = det.observe("visit microsoft.com/link and enter code QWER1234 please")

    assert challenge is not None
    assert challenge.verification_url == "https://example.test/link"


def test_schemeless_fragment_with_ellipsis_terminator():
    det = make_detector()
    fragment = "...microsoft.com/link and use the code AB12CD..."
    challenge = det.observe(fragment)

    assert challenge is not None
    assert challenge.user_code == "AB12CD"
    assert challenge.verification_url == "https://www.microsoft.com/link"
    assert det.observe(fragment) is None
    assert det.current == challenge


def test_url_trailing_punctuation_is_stripped():
    det = make_detector()
    challenge = det.observe("Go to https://www.microsoft.com/link. Then use the code QWER1234.")

    assert challenge.verification_url == "https://www.microsoft.com/link"


def test_buffer_is_bounded():
    det = make_detector(buffer_chars=32)
    det.observe("open https://www.microsoft.com/link ")
    det.observe("x" * 100)

    # marker fell out of the carry-over window
    assert det.observe("use the code AB12CD34 now") is None


def test_structured_report():
    det = make_detector()
    challenge = det.report("https://www.microsoft.com/link?otc=1", "ZXCV1234", operator="http")

    assert challenge.verification_url == "https://www.microsoft.com/link?otc=1"
    assert challenge.user_code == "ZXCV1234"
    assert challenge.operator == "http"
    assert det.report(None, "ZXCV1234") is None
    assert det.report(None, "not a code") is None


def test_structured_report_without_url_uses_default():
    det = make_detector()
    challenge = det.report("", "ZXCV1234")
    assert challenge.verification_url == "https://www.microsoft.com/link"
