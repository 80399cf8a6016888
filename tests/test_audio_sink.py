import pytest

from playback import sink as sink_module
from playback.sink import PygameAudioSink
from utils.errors import DecodeFailure, PlaybackError

pygame = sink_module.pygame


class FakeChannel:
    def __init__(self, sound, busy_polls):
        self.sound = sound
        self.busy_polls = busy_polls

    def get_busy(self):
        self.busy_polls -= 1
        return self.busy_polls >= 0

    def get_sound(self):
        return self.sound


class FakeSound:
    def __init__(self, path):
        if path.endswith("broken.mp3"):
            raise pygame.error("Unable to open file")
        self.path = path

    def play(self):
        return FakeChannel(self, busy_polls=3)

    def get_length(self):
        return 1.0


class FakeMixer:
    def __init__(self, fail_init=False):
        self.fail_init = fail_init
        self.channels = None
        self.initialized = 0
        self.quit_calls = 0
        self.Sound = FakeSound

    def init(self):
        if self.fail_init:
            raise pygame.error("No available audio device")
        self.initialized += 1

    def set_num_channels(self, count):
        self.channels = count

    def quit(self):
        self.quit_calls += 1


@pytest.fixture
def mixer(monkeypatch):
    fake = FakeMixer()
    monkeypatch.setattr(pygame, "mixer", fake)
    return fake


def test_play_blocks_until_channel_is_idle(mixer, tmp_path):
    sink = PygameAudioSink(channels=8, poll_interval=0.0)

    sink.play(tmp_path / "horn.mp3")
    sink.play(tmp_path / "horn.mp3")
    sink.close()

    assert mixer.initialized == 1
    assert mixer.channels == 8
    assert mixer.quit_calls == 1


def test_undecodable_file_is_decode_failure(mixer, tmp_path):
    with pytest.raises(DecodeFailure):
        PygameAudioSink(poll_interval=0.0).play(tmp_path / "broken.mp3")


def test_missing_device_is_playback_error(monkeypatch, tmp_path):
    monkeypatch.setattr(pygame, "mixer", FakeMixer(fail_init=True))

    with pytest.raises(PlaybackError) as excinfo:
        PygameAudioSink().play(tmp_path / "horn.mp3")
    assert not isinstance(excinfo.value, DecodeFailure)
