"""
Тесты для FormatSelector и AcquisitionRequest
"""
import unittest

from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.format_selector import FormatSelector, SelectorKind, BEST_EXPRESSION
from vidqueue.models.tier import Tier


class TestFormatSelector(unittest.TestCase):
    """Преобразование селектора в выражение -f"""

    def test_resolution_tokens(self):
        """{n}p -> видео не выше n + bestaudio + безусловный fallback"""
        for height in (360, 480, 720, 1080, 2160):
            selector = FormatSelector.parse(f"{height}p")
            self.assertEqual(selector.kind, SelectorKind.RESOLUTION)
            expression = selector.expression
            self.assertIn(f"bestvideo[height<={height}]", expression)
            self.assertIn("bestaudio", expression)
            self.assertTrue(expression.endswith("/best"))

    def test_resolution_download_args_remux_and_embed(self):
        args = FormatSelector.parse("720p").download_args()
        self.assertEqual(args[0], '-f')
        self.assertIn('--merge-output-format', args)
        self.assertIn('--remux-video', args)
        self.assertIn('--embed-metadata', args)
        self.assertIn('--embed-thumbnail', args)

    def test_audio_token(self):
        """audio_{codec}_{bitrate} -> извлечение аудио с кодеком и битрейтом"""
        selector = FormatSelector.parse("audio_mp3_128")
        self.assertEqual(selector.kind, SelectorKind.AUDIO)

        args = selector.download_args()
        self.assertIn('--extract-audio', args)
        self.assertEqual(args[args.index('--audio-format') + 1], 'mp3')
        self.assertEqual(args[args.index('--audio-quality') + 1], '128K')
        self.assertIn('--postprocessor-args', args)

    def test_audio_token_non_mp3_has_no_lame_args(self):
        args = FormatSelector.parse("audio_m4a_160").download_args()
        self.assertEqual(args[args.index('--audio-format') + 1], 'm4a')
        self.assertNotIn('--postprocessor-args', args)

    def test_best_sentinel(self):
        for token in ('best', 'best_available'):
            selector = FormatSelector.parse(token)
            self.assertEqual(selector.kind, SelectorKind.BEST)
            self.assertEqual(selector.expression, BEST_EXPRESSION)

    def test_native_expression_passthrough(self):
        """Выражение с + или / передается как есть"""
        for token in ('bv*+ba', '22/18', 'bestvideo[height<=480]+bestaudio/best'):
            selector = FormatSelector.parse(token)
            self.assertEqual(selector.kind, SelectorKind.NATIVE)
            self.assertEqual(selector.expression, token)

    def test_format_id_passthrough(self):
        selector = FormatSelector.parse("137")
        self.assertEqual(selector.kind, SelectorKind.FORMAT_ID)
        self.assertEqual(selector.download_args(), ['-f', '137'])

    def test_empty_selector_rejected(self):
        with self.assertRaises(ValueError):
            FormatSelector.parse("  ")

    def test_quality_key_wins_for_download(self):
        selector = FormatSelector.for_download("137", quality_key="1080p")
        self.assertEqual(selector.kind, SelectorKind.RESOLUTION)
        self.assertEqual(selector.height, 1080)

    def test_native_format_selector_wins_for_stream(self):
        selector = FormatSelector.for_stream("bv*+ba/b", quality_key="720p")
        self.assertEqual(selector.expression, "bv*+ba/b")

    def test_stream_args_write_to_stdout(self):
        args = FormatSelector.parse("720p").stream_args()
        self.assertEqual(args[args.index('-o') + 1], '-')
        self.assertIn('--no-part', args)


class TestAcquisitionRequest(unittest.TestCase):
    """Создание запроса из payload и сериализация"""

    def test_from_camel_case_payload(self):
        request = AcquisitionRequest.from_payload({
            'sourceUrl': 'https://youtu.be/abc',
            'formatSelector': '720p',
            'jobId': 17,
            'callerId': 42,
            'policySettings': {'freeStorageDays': 3},
        })
        self.assertEqual(request.source_url, 'https://youtu.be/abc')
        self.assertEqual(request.job_id, '17')
        self.assertEqual(request.caller_id, '42')
        self.assertIsNone(request.tier_hint)
        self.assertEqual(request.policy_settings, {'freeStorageDays': 3})

    def test_invalid_payload(self):
        with self.assertRaises(ValueError):
            AcquisitionRequest.from_payload({'formatSelector': '720p', 'jobId': '1'})

    def test_blank_selector_rejected_and_values_stripped(self):
        with self.assertRaises(ValueError):
            AcquisitionRequest.from_payload({'sourceUrl': 'https://youtu.be/a', 'formatSelector': ' \t', 'jobId': '1'})

        request = AcquisitionRequest.from_payload({
            'sourceUrl': ' https://youtu.be/a ',
            'formatSelector': ' 720p\n',
            'jobId': '1',
        })
        self.assertEqual(request.source_url, 'https://youtu.be/a')
        self.assertEqual(request.format_selector, '720p')

    def test_json_keeps_tier(self):
        request = AcquisitionRequest('https://youtu.be/abc', 'best', '1').with_tier(Tier.MID)
        restored = AcquisitionRequest.from_json(request.to_json())
        self.assertEqual(restored, request)
        self.assertEqual(restored.tier_hint, Tier.MID)


if __name__ == '__main__':
    unittest.main()
