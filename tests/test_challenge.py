"""Tests for verification page recognition."""


class TestIsChallengePage:
    def test_normal_page(self):
        from spiders.challenge import is_challenge_page
        html = "<html><head><title>斗破苍穹_番茄小说</title></head><body><p>正文</p></body></html>"
        assert not is_challenge_page(html)

    def test_empty_document(self):
        from spiders.challenge import is_challenge_page
        assert is_challenge_page("")
        assert is_challenge_page("   \n")

    def test_cloudflare_title(self):
        from spiders.challenge import is_challenge_page
        assert is_challenge_page("<html><title>Just a moment...</title></html>")

    def test_chinese_marker_in_body_head(self):
        from spiders.challenge import is_challenge_page
        assert is_challenge_page("<html><body><div>请完成验证后继续访问</div></body></html>")

    def test_captcha_only_counts_in_title(self):
        from spiders.challenge import is_challenge_page
        script_page = "<html><title>第一章</title><script>loadCaptcha()</script></html>"
        assert not is_challenge_page(script_page)
        assert is_challenge_page("<html><title>验证码</title></html>")

    def test_marker_deep_in_chapter_text_ignored(self):
        from spiders.challenge import is_challenge_page
        html = "<html><title>第九章</title><body>" + "正文" * 3000 + "安全验证</body></html>"
        assert not is_challenge_page(html)

    def test_extra_signatures(self):
        from spiders.challenge import is_challenge_page
        html = "<html><title>起点中文网</title><body>probe.js</body></html>"
        assert is_challenge_page(html, extra_signatures=("probe.js",))

    def test_page_title(self):
        from spiders.challenge import page_title
        assert page_title("<TITLE lang='zh'> 书名_起点 </TITLE>") == "书名_起点"
        assert page_title("<html></html>") == ""
