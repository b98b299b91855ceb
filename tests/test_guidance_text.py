import unittest

from scripts.guidance_text import (
    clean_html,
    extract_content,
    extract_title,
    hash_string,
    parse_published_date,
)


class HashStringTests(unittest.TestCase):
    def test_known_digests(self):
        self.assertEqual(hash_string(""), "e3b0c44298fc1c14")
        self.assertEqual(hash_string("abc"), "ba7816bf8f01cfea")

    def test_stable_fixed_length_hex(self):
        text = "Hypertension in adults: diagnosis and management"
        self.assertEqual(hash_string(text), hash_string(text))
        self.assertEqual(len(hash_string(text)), 16)
        self.assertRegex(hash_string(text), r"^[0-9a-f]{16}$")
        self.assertNotEqual(hash_string(text), hash_string(text + " "))


class CleanHtmlTests(unittest.TestCase):
    def test_drops_boilerplate_and_keeps_paragraphs(self):
        html = (
            "<div><script>var x = 1;</script><p>Hello&nbsp;&amp;   world</p>"
            "<nav>menu</nav><p>Second&#8217;s</p></div>"
        )
        self.assertEqual(clean_html(html), "Hello & world\nSeconds")

    def test_boilerplate_content_never_leaks(self):
        html = "<header>Site banner</header><p>Body</p><footer>Copyright</footer><aside>Related</aside><style>p{}</style>"
        out = clean_html(html)
        self.assertEqual(out, "Body")

    def test_entities_decoded_in_sequence(self):
        self.assertEqual(clean_html("x &amp;lt;b&amp;gt; y"), "x <b> y")

    def test_unknown_entities_are_not_decoded(self):
        self.assertEqual(clean_html("a &copy; b &#x27; c"), "a &copy; b &#x27; c")
        self.assertEqual(clean_html("a&#160;b"), "ab")

    def test_collapses_blank_lines(self):
        self.assertEqual(clean_html("<p>a</p><p></p><p></p><p>b</p>"), "a\n\nb")

    def test_line_breaks(self):
        self.assertEqual(clean_html("one<br>two<br/>three<hr />four"), "one\ntwo\nthree\nfour")

    def test_pure_function(self):
        html = "<main><h2>Dose</h2><ul><li>5 mg</li><li>10 mg</li></ul></main>"
        self.assertEqual(clean_html(html), clean_html(html))
        self.assertEqual(clean_html(html), "Dose\n5 mg\n10 mg")


class TitleAndDateTests(unittest.TestCase):
    def test_title_strips_site_suffix(self):
        html = "<html><head><title>Asthma: diagnosis | NICE guidance</title></head></html>"
        self.assertEqual(extract_title(html), "Asthma: diagnosis")

    def test_title_keeps_inner_hyphen(self):
        html = "<title>Long-term conditions - NHS England</title>"
        self.assertEqual(extract_title(html), "Long-term conditions")

    def test_title_falls_back_to_h1(self):
        html = "<html><body><h1>Heading <em>one</em></h1></body></html>"
        self.assertEqual(extract_title(html), "Heading one")

    def test_title_untitled(self):
        self.assertEqual(extract_title("<html><body><p>No headings</p></body></html>"), "Untitled")

    def test_published_date_from_meta(self):
        html = '<head><meta property="article:published_time" content="2024-03-05T10:00:00Z"></head>'
        self.assertEqual(parse_published_date(html), "2024-03-05")

    def test_published_date_meta_name(self):
        html = '<head><meta name="datePublished" content="2023-07-19"></head>'
        self.assertEqual(parse_published_date(html), "2023-07-19")

    def test_published_date_from_time(self):
        html = '<p>Posted <time datetime="2023-11-02T08:00">2 Nov</time></p>'
        self.assertEqual(parse_published_date(html), "2023-11-02")

    def test_published_date_absent(self):
        self.assertIsNone(parse_published_date("<p>no dates here</p>"))


class ExtractContentTests(unittest.TestCase):
    def test_source_specific_container(self):
        body = "Body text " * 20
        html = (
            "<html><body><header>Site</header>"
            f'<div class="entry-content"><p>{body}</p></div><div>after</div>'
            "</body></html>"
        )
        content, chapters = extract_content(html, "nhs")
        self.assertEqual(content, body.strip())
        self.assertEqual(chapters, [])

    def test_short_container_falls_back_to_body(self):
        html = "<html><body><article>tiny</article><p>Whole body text here</p></body></html>"
        content, _ = extract_content(html, "ncl")
        self.assertEqual(content, "tiny Whole body text here")

    def test_no_body_uses_raw_document(self):
        content, _ = extract_content("plain <b>text</b> only", "nhs")
        self.assertEqual(content, "plain text only")

    def test_unknown_source_uses_generic_patterns(self):
        body = "Generic article paragraph. " * 6
        html = f"<html><body><main><p>{body}</p></main><p>footer noise</p></body></html>"
        content, _ = extract_content(html, "somewhere-else")
        self.assertEqual(content, body.strip())

    def test_nice_chapter_links(self):
        html = """
        <html><body><main>
        <p>Overview of the guideline with enough words to pass the container threshold easily.</p>
        <a href="/guidance/ng28/chapter/Recommendations">Recommendations</a>
        <a href="/guidance/ng28/chapter/Recommendations">Recommendations</a>
        <a href="/guidance/ng28/chapter/Context"><span></span></a>
        </main></body></html>
        """
        _, chapters = extract_content(html, "nice")
        self.assertEqual(
            chapters,
            [{"url": "https://www.nice.org.uk/guidance/ng28/chapter/Recommendations", "title": "Recommendations"}],
        )
        _, other = extract_content(html, "nhs")
        self.assertEqual(other, [])


if __name__ == "__main__":
    unittest.main()
