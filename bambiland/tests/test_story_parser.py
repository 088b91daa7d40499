import os
import tempfile
import unittest

from bambiland.story_parser import chapter_number, parse_story, parse_story_file


class StoryParserTests(unittest.TestCase):
    def test_parse_story_splits_on_emoji(self):
        text = (
            "Prologue text. Chapter One: Arrival. She stepped off the train.\U0001F339"
            "chapter two: Is it love? Maybe.\U0001F497"
            "Chapter Three: No punctuation here"
        )
        chapters = parse_story(text)
        self.assertEqual([c.number for c in chapters], [1, 2, 3])
        self.assertEqual(chapters[0].title, "Chapter 1: Arrival.")
        self.assertEqual(chapters[0].content, "She stepped off the train.")
        self.assertEqual(chapters[1].title, "Chapter 2: Is it love?")
        self.assertEqual(chapters[2].title, "Chapter 3: No punctuation here")
        self.assertEqual(chapters[2].content, "")

    def test_chapter_number(self):
        self.assertEqual(chapter_number("ten"), 10)
        self.assertEqual(chapter_number("Eleven"), 1)

    def test_parse_story_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "story.md")
            with open(path, "w", encoding="utf-8") as f:
                f.write("Chapter Four: Late. Very late.")
            chapters = parse_story_file(path)
            self.assertEqual(chapters[0].number, 4)
            self.assertEqual(parse_story_file(os.path.join(tmp, "missing.md")), [])

            broken = os.path.join(tmp, "broken.md")
            with open(broken, "wb") as f:
                f.write(b"\xff\xfe broken")
            self.assertEqual(parse_story_file(broken), [])


if __name__ == "__main__":
    unittest.main()
