from conftest import MP3_BYTES, MP4_BYTES, image_bytes, tagged_mp3


# ---------- /media ----------

def test_media_full_response(client):
    r = client.get("/media/clip.mp4")
    assert r.status_code == 200
    assert r.headers["content-type"] == "video/mp4"
    assert r.headers["content-length"] == str(len(MP4_BYTES))
    assert r.headers["accept-ranges"] == "bytes"
    assert "cache-control" in r.headers
    assert r.content == MP4_BYTES


def test_media_range_response(client):
    r = client.get("/media/song.mp3", headers={"Range": "bytes=0-99"})
    assert r.status_code == 206
    assert r.headers["content-range"] == f"bytes 0-99/{len(MP3_BYTES)}"
    assert r.headers["content-length"] == "100"
    assert r.content == MP3_BYTES[:100]


def test_media_suffix_and_open_ranges(client):
    size = len(MP3_BYTES)
    r = client.get("/media/song.mp3", headers={"Range": "bytes=-10"})
    assert r.status_code == 206 and r.content == MP3_BYTES[-10:]
    r = client.get("/media/song.mp3", headers={"Range": f"bytes={size - 5}-"})
    assert r.status_code == 206 and r.content == MP3_BYTES[-5:]


def test_media_unsatisfiable_range(client):
    size = len(MP3_BYTES)
    r = client.get("/media/song.mp3", headers={"Range": f"bytes={size}-"})
    assert r.status_code == 416
    assert r.headers["content-range"] == f"bytes */{size}"


def test_media_malformed_range_serves_whole_file(client):
    r = client.get("/media/song.mp3", headers={"Range": "bytes=zz-"})
    assert r.status_code == 200
    assert r.content == MP3_BYTES


def test_media_rejections(client):
    assert client.get("/media/notes.txt").status_code == 403      # not a media extension
    assert client.get("/media/fake.png").status_code == 403       # HTML pretending to be PNG
    assert client.get("/media/.hidden.jpg").status_code == 403
    assert client.get("/media/escape.png").status_code == 403     # symlink out of the root
    assert client.get("/media/missing.png").status_code == 404


def test_media_encoded_traversal(client):
    r = client.get("/media/%2e%2e/outside/secret.png")
    assert r.status_code in (403, 404)


def test_error_body_does_not_leak_paths(client, media_root):
    r = client.get("/media/escape.png")
    assert r.json() == {"detail": "Forbidden"}
    assert str(media_root) not in r.text


# ---------- /archive ----------

def test_archive_member_served(client):
    r = client.get("/archive/album.zip!/disc1/t1.mp3")
    assert r.status_code == 200
    assert r.headers["content-type"] == "audio/mpeg"
    assert r.content == MP3_BYTES


def test_archive_member_range(client):
    r = client.get("/archive/album.zip!/disc1/t1.mp3", headers={"Range": "bytes=3-12"})
    assert r.status_code == 206
    assert r.content == MP3_BYTES[3:13]


def test_archive_member_rejections(client):
    assert client.get("/archive/album.zip!/readme.txt").status_code == 403
    assert client.get("/archive/album.zip!/disc1/missing.mp3").status_code == 404
    assert client.get("/archive/album.zip").status_code == 404
    assert client.get("/archive/song.mp3!/x.mp3").status_code == 404


# ---------- /thumb ----------

def test_thumbnail_built_and_cached(client, settings):
    r = client.get("/thumb/a.png?h=20")
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    assert r.content[:3] == b"\xff\xd8\xff"
    assert len(list(settings.thumb_dir.glob("*.jpg"))) == 1
    again = client.get("/thumb/a.png?h=20")
    assert again.content == r.content


def test_thumbnail_cache_holds_only_finished_files(client, settings):
    r = client.get("/thumb/sub/c.png?h=24")
    files = list(settings.thumb_dir.iterdir())
    assert [f.suffix for f in files] == [".jpg"]
    assert files[0].read_bytes() == r.content


def test_thumbnail_cache_failure_leaves_no_partial_file(client, settings, monkeypatch):
    def fail_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("doggygallery.utils.thumbs.os.replace", fail_replace)
    r = client.get("/thumb/a.png?h=30")
    assert r.status_code == 200
    assert r.content[:3] == b"\xff\xd8\xff"
    assert list(settings.thumb_dir.iterdir()) == []


def test_thumbnail_falls_back_to_media(client):
    r = client.get("/thumb/logo.svg", follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "/media/logo.svg"
    r = client.get("/thumb/fake.png", follow_redirects=False)
    assert r.status_code == 307


def test_thumbnail_rejects_non_images(client):
    assert client.get("/thumb/song.mp3").status_code == 403


# ---------- /api ----------

def test_api_config(client):
    body = client.get("/api/config").json()
    assert body["app_name"] == "DoggyGallery"
    assert body["tls_version"] == "TLS 1.3"
    assert ".png" in body["image_extensions"]
    assert body["swipe_threshold"] == 50
    assert body["album_art_names"][0] == "cover.jpg"
    assert "password" not in str(body).lower()


def test_api_filter(client):
    body = client.get("/api/filter", params={"type": "audio"}).json()
    paths = {e["path"] for e in body["entries"]}
    assert paths == {"song.mp3", "sub/deep/d.mp3", "music/track1.mp3", "music/track2.mp3"}
    assert body["total_entries"] == 4
    assert body["page"] == 1


def test_api_filter_paging_is_lenient(client):
    body = client.get("/api/filter", params={"page": "x", "per_page": "2", "extension": "png"}).json()
    assert body["per_page"] == 2
    assert body["page"] == 1
    assert len(body["entries"]) == 2
    assert body["total_pages"] == 2   # a.png, fake.png, inner.png, sub/c.png


def test_api_filter_scope_rules(client):
    assert client.get("/api/filter", params={"path": "../"}).status_code == 403
    assert client.get("/api/filter", params={"path": "a.png"}).status_code == 404


def test_api_random(client):
    body = client.get("/api/random", params={"type": "video"}).json()
    assert body["item"]["path"] == "clip.mp4"
    assert body["url"] == "/media/clip.mp4"
    assert client.get("/api/random", params={"type": "nothing"}).status_code == 404


def test_album_art_found_next_to_track(client):
    r = client.get("/api/album-art/music/track1.mp3", follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "/media/music/cover.jpg"


def test_album_art_inside_archive(client):
    r = client.get("/api/album-art/album.zip!/disc1/t1.mp3", follow_redirects=False)
    assert r.headers["location"] == "/archive/album.zip!/disc1/cover.png"


def test_album_art_placeholder(client):
    r = client.get("/api/album-art/sub/deep/d.mp3", follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == "/static/img/album-placeholder.svg"


def test_album_art_skips_covers_that_cannot_be_served(client, media_root):
    alb = media_root / "alb"
    alb.mkdir()
    (alb / "t.mp3").write_bytes(MP3_BYTES)
    (alb / "cover.jpg").write_bytes(b"")                  # exists but would be rejected by /media
    (alb / "cover.png").write_bytes(image_bytes("PNG"))
    r = client.get("/api/album-art/alb/t.mp3", follow_redirects=False)
    assert r.headers["location"] == "/media/alb/cover.png"
    assert client.get(r.headers["location"]).status_code == 200


def test_album_art_skips_undecodable_archive_cover(client, media_root):
    import zipfile
    with zipfile.ZipFile(media_root / "ep.zip", "w") as zf:
        zf.writestr("t.mp3", MP3_BYTES)
        zf.writestr("cover.jpg", b"<html>not a jpeg</html>")
        zf.writestr("folder.png", image_bytes("PNG"))
    r = client.get("/api/album-art/ep.zip!/t.mp3", follow_redirects=False)
    assert r.headers["location"] == "/archive/ep.zip!/folder.png"


def test_album_art_prefers_picture_embedded_in_track(client, media_root):
    png = image_bytes("PNG", color=(10, 200, 10))
    tagged_mp3(media_root / "music" / "tagged.mp3", png)
    r = client.get("/api/album-art/music/tagged.mp3", follow_redirects=False)
    assert r.status_code == 200                           # music/cover.jpg is not used
    assert r.headers["content-type"] == "image/png"
    assert r.content == png


# ---------- pages ----------

def test_gallery_root_page(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "text/html" in r.headers["content-type"]
    assert "DoggyGallery" in r.text
    assert 'href="/sub"' in r.text
    assert "/thumb/a.png" in r.text
    assert ".hidden.jpg" not in r.text
    assert "escape.png" not in r.text


def test_gallery_subdirectory_and_pagination(client):
    r = client.get("/sub")
    assert r.status_code == 200
    assert "c.png" in r.text
    r = client.get("/", params={"per_page": "2"})
    assert "page=2" in r.text


def test_gallery_page_rejections(client):
    assert client.get("/.secret").status_code == 403
    assert client.get("/a.png").status_code == 404
    assert client.get("/does-not-exist").status_code == 404


def test_music_page_lists_audio_and_archives(client):
    r = client.get("/music")
    assert r.status_code == 200
    assert "song.mp3" in r.text
    assert "album.zip" in r.text
    assert "clip.mp4" not in r.text
    assert "Play all shuffled" in r.text


def test_music_page_inside_archive(client):
    r = client.get("/music/album.zip")
    assert r.status_code == 200
    assert "/archive/album.zip!/disc1/t1.mp3" in r.text


def test_music_page_on_plain_file_is_404(client):
    assert client.get("/music/song.mp3").status_code == 404


def test_pages_hand_swipe_threshold_to_scripts(client):
    from doggygallery.services.lightbox import SWIPE_THRESHOLD
    assert f'data-swipe-threshold="{SWIPE_THRESHOLD}"' in client.get("/").text


# ---------- browser scripts ----------

def test_lightbox_script_marks_failed_items_and_owns_its_keys(anon_client):
    js = anon_client.get("/static/js/lightbox.js").text
    assert js.count('addEventListener("error"') == 2     # <img> and <video>
    assert 'action === "retry"' in js
    assert "stopImmediatePropagation()" in js
    assert "{ capture: true }" in js
    player = anon_client.get("/static/js/audio-player.js").text
    assert 'this.audio.addEventListener("error"' in player
