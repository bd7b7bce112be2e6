"""
Тесты построения вариантов качества и утилит
"""
import unittest

from vidqueue.services.quality_options import (
    build_quality_options,
    build_video_metadata,
    estimate_size_bytes,
    assumed_bitrate_kbps,
)
from vidqueue.utils.utils import correct_url, format_file_size, format_duration, truncate


def video_only(format_id, height, **extra):
    fmt = {'format_id': format_id, 'height': height, 'vcodec': 'avc1', 'acodec': 'none', 'ext': 'mp4'}
    fmt.update(extra)
    return fmt


def muxed(format_id, height, **extra):
    fmt = {'format_id': format_id, 'height': height, 'vcodec': 'avc1', 'acodec': 'mp4a', 'ext': 'mp4'}
    fmt.update(extra)
    return fmt


def audio_only(format_id, abr, ext='m4a', **extra):
    fmt = {'format_id': format_id, 'abr': abr, 'vcodec': 'none', 'acodec': 'mp4a', 'ext': ext}
    fmt.update(extra)
    return fmt


class TestQualityOptions(unittest.TestCase):
    """Синтез вариантов качества"""

    def test_synthesized_1080p_size(self):
        """1080p без размера, 100 секунд -> 4000 * 1000 * 100 * 0.7 / 8"""
        options = build_quality_options({'duration': 100, 'formats': [video_only('137', 1080)]})
        option = next(o for o in options if o.quality_key == '1080p')
        self.assertTrue(option.synthesized)
        self.assertAlmostEqual(option.estimated_size_bytes, 4000 * 1000 * 100 * 0.7 / 8)
        self.assertAlmostEqual(option.estimated_size_bytes, 35_000_000)
        self.assertEqual(option.format_id, 'bestvideo[height<=1080]+bestaudio/best[height<=1080]/best')

    def test_bitrate_table(self):
        self.assertEqual(assumed_bitrate_kbps(2160), 15000)
        self.assertEqual(assumed_bitrate_kbps(1440), 8000)
        self.assertEqual(assumed_bitrate_kbps(1080), 4000)
        self.assertEqual(assumed_bitrate_kbps(720), 2000)
        self.assertEqual(assumed_bitrate_kbps(480), 1000)
        self.assertEqual(assumed_bitrate_kbps(360), 700)

    def test_best_muxed_format_per_height(self):
        """Для разрешения выбирается формат с наибольшим tbr"""
        info = {'duration': 60, 'formats': [
            muxed('low', 720, tbr=1000),
            muxed('high', 720, tbr=2000),
        ]}
        options = [o for o in build_quality_options(info) if o.kind == 'video']
        self.assertEqual(len(options), 1)
        self.assertEqual(options[0].format_id, 'high')
        self.assertFalse(options[0].synthesized)
        self.assertAlmostEqual(options[0].estimated_size_bytes, estimate_size_bytes(2000, 60))

    def test_reported_size_is_used(self):
        info = {'duration': 60, 'formats': [muxed('18', 360, tbr=500, filesize=12345)]}
        option = build_quality_options(info)[0]
        self.assertEqual(option.estimated_size_bytes, 12345)

    def test_sorted_by_height_and_premium_flag(self):
        info = {'duration': 10, 'formats': [
            video_only('a', 480),
            muxed('b', 720, tbr=1500),
            video_only('c', 2160),
            video_only('d', 1080),
        ]}
        video = [o for o in build_quality_options(info) if o.kind == 'video']
        self.assertEqual([o.height for o in video], [2160, 1080, 720, 480])
        self.assertEqual([o.requires_premium for o in video], [True, True, False, False])
        self.assertEqual(video[0].label, '2160p (4K)')

    def test_low_resolutions_are_not_synthesized(self):
        """Video-only ниже 480p не синтезируется, остается best_available"""
        options = build_quality_options({'duration': 10, 'formats': [video_only('160', 144), video_only('133', 240)]})
        video = [o for o in options if o.kind == 'video']
        self.assertEqual(len(video), 1)
        self.assertEqual(video[0].quality_key, 'best_available')

    def test_audio_options(self):
        """Лучший реальный audio-only формат и всегда MP3 128kbps"""
        info = {'duration': 100, 'formats': [
            audio_only('139', 48),
            audio_only('140', 128),
            audio_only('251', 160, ext='webm'),
        ]}
        audio = [o for o in build_quality_options(info) if o.kind == 'audio']
        self.assertEqual(len(audio), 2)
        self.assertEqual(audio[0].format_id, '251')
        self.assertEqual(audio[0].quality_key, 'audio_webm_160')
        self.assertEqual(audio[-1].quality_key, 'audio_mp3_128')
        self.assertEqual(audio[-1].estimated_size_bytes, 128 * 1000 * 100 / 8)

    def test_mp3_option_without_audio_formats(self):
        audio = [o for o in build_quality_options({'duration': 0, 'formats': []}) if o.kind == 'audio']
        self.assertEqual([o.quality_key for o in audio], ['audio_mp3_128'])

    def test_video_metadata(self):
        metadata = build_video_metadata({
            'id': 'abc',
            'title': 'Test Video',
            'thumbnail': 'https://i.ytimg.com/abc.jpg',
            'duration': 3725,
            'formats': [muxed('22', 720, tbr=1500)],
        })
        self.assertEqual(metadata.id, 'abc')
        self.assertEqual(metadata.duration, '01:02:05')
        self.assertEqual(len(metadata.video_options), 1)
        self.assertEqual(len(metadata.audio_options), 1)


class TestUtils(unittest.TestCase):
    """Тесты утилит"""

    def test_correct_url(self):
        self.assertEqual(
            correct_url('https://www.tiktiktok.com/@user/video/1'),
            'https://www.tiktok.com/@user/video/1'
        )
        self.assertEqual(correct_url(' https://youtu.be/abc '), 'https://youtu.be/abc')

    def test_format_file_size(self):
        self.assertEqual(format_file_size(None), 'Unknown')
        self.assertEqual(format_file_size(512), '512.00 B')
        self.assertEqual(format_file_size(35_000_000), '33.38 MB')

    def test_format_duration(self):
        self.assertEqual(format_duration(59), '00:59')
        self.assertEqual(format_duration(3600), '01:00:00')

    def test_truncate(self):
        self.assertEqual(truncate('x' * 300, 200), 'x' * 200)
        self.assertEqual(truncate(None, 10), '')


if __name__ == '__main__':
    unittest.main()
