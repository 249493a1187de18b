"""
Test Suite for QuestionPhraser

Uses a mock generation client; no model is loaded.
"""

import unittest
from unittest.mock import Mock

from backend.contracts import AnswerFormat, QuestionNode
from backend.utils.question_phraser import MAX_STEM_LENGTH, QuestionPhraser


class TestQuestionPhraser(unittest.TestCase):

    def setUp(self):
        self.client = Mock()
        self.question = QuestionNode(
            id="gov_1",
            prompt="Does your board oversee climate risk",
            category="governance",
            format=AnswerFormat.YES_NO,
        )

    def test_generated_stem_used(self):
        self.client.generate.return_value = '"Does the board keep watch over climate risk?"\nExtra line'
        phraser = QuestionPhraser(self.client, max_tokens=32, temperature=0.1)

        self.assertEqual(phraser.phrase(self.question), "Does the board keep watch over climate risk?")

        kwargs = self.client.generate.call_args.kwargs
        self.assertEqual(kwargs['max_tokens'], 32)
        self.assertEqual(kwargs['temperature'], 0.1)
        self.assertIn(self.question.prompt, kwargs['prompt'])
        self.assertIn("governance", kwargs['prompt'])

    def test_generation_failure_falls_back(self):
        self.client.generate.side_effect = RuntimeError("CUDA error")
        phraser = QuestionPhraser(self.client)

        with self.assertLogs('backend.utils.question_phraser', level='ERROR'):
            self.assertEqual(phraser.phrase(self.question), self.question.prompt)

    def test_empty_output_falls_back(self):
        self.client.generate.return_value = "   "
        self.assertEqual(QuestionPhraser(self.client).phrase(self.question), self.question.prompt)

    def test_overlong_output_falls_back(self):
        self.client.generate.return_value = "x" * (MAX_STEM_LENGTH + 1)
        self.assertEqual(QuestionPhraser(self.client).phrase(self.question), self.question.prompt)

    def test_non_string_output_falls_back(self):
        self.client.generate.return_value = None
        self.assertEqual(QuestionPhraser(self.client).phrase(self.question), self.question.prompt)

    def test_client_without_generate(self):
        with self.assertRaises(TypeError):
            QuestionPhraser(object())


if __name__ == '__main__':
    unittest.main()
