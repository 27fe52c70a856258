from chat_core.agents.reconciler import REPLACE_SUMMARY_COMMAND, StreamMode, StreamReconciler


def test_reconciler_folds_deltas():
    rec = StreamReconciler()
    texts = []
    for delta in ["Hel", "lo", " world"]:
        texts.extend(u.text for u in rec.feed(delta))
    assert texts == ["Hel", "Hello", "Hello world"]
    final = rec.finish()
    assert final.text == "Hello world"
    assert final.streaming is False
    assert final.empty is False


def test_reconciler_empty_stream():
    rec = StreamReconciler()
    final = rec.finish()
    assert final.empty is True
    assert final.text == ""


def test_reconciler_fail_keeps_partial_text():
    rec = StreamReconciler()
    rec.feed("Partial answer")
    failed = rec.fail("Error: boom")
    assert failed.error is True
    assert failed.streaming is False
    assert failed.text == "Partial answer\n\nError: boom"


def test_reconciler_fail_without_content():
    rec = StreamReconciler()
    failed = rec.fail("Error: boom")
    assert failed.text == "Error: boom"


def test_reconciler_ignores_feed_after_close():
    rec = StreamReconciler()
    rec.feed("a")
    rec.finish()
    assert rec.feed("b") == []
    assert rec.accumulated == "a"


def test_reconciler_marker_in_single_chunk():
    rec = StreamReconciler(marker=REPLACE_SUMMARY_COMMAND)
    updates = rec.feed(f"{REPLACE_SUMMARY_COMMAND}\nNew summary")
    kinds = [u.kind for u in updates]
    assert kinds == ["replacement_started", "replacement"]
    assert updates[-1].text == "New summary"
    assert rec.mode is StreamMode.REPLACING
    final = rec.finish()
    assert final.text == "New summary"
    assert rec.accumulated == ""


def test_reconciler_marker_split_across_chunks():
    rec = StreamReconciler(marker=REPLACE_SUMMARY_COMMAND)
    updates = []
    for delta in ["[replace_sum", "mary_with_new", "_text]", " Fresh", " text"]:
        updates.extend(rec.feed(delta))
    # 控制串的任何片段都不能出现在主输出里
    assert not any(u.kind == "primary" for u in updates)
    assert [u.kind for u in updates].count("replacement_started") == 1
    assert rec.finish().text == "Fresh text"


def test_reconciler_holds_only_marker_prefix():
    rec = StreamReconciler(marker=REPLACE_SUMMARY_COMMAND)
    updates = rec.feed("The answer is [rep")
    assert [u.text for u in updates] == ["The answer is "]
    updates = rec.feed("ly]")
    assert [u.text for u in updates] == ["The answer is [reply]"]
    assert rec.finish().text == "The answer is [reply]"


def test_reconciler_flushes_held_tail_on_finish():
    rec = StreamReconciler(marker=REPLACE_SUMMARY_COMMAND)
    rec.feed("See list [")
    final = rec.finish()
    assert final.text == "See list ["


def test_reconciler_fold_has_single_terminal_update():
    rec = StreamReconciler()
    updates = []
    for delta in ["Hel", "lo ", "world"]:
        updates.extend(rec.feed(delta))
    updates.append(rec.finish())
    assert [u.streaming for u in updates].count(False) == 1
    assert updates[-1].text == "Hello world"


def test_reconciler_marker_split_after_leading_text():
    rec = StreamReconciler(marker=REPLACE_SUMMARY_COMMAND)
    first = rec.feed("answer: [replace_summary_with_")
    assert [u.text for u in first] == ["answer: "]
    rec.feed("new_text]\nNew body")
    assert rec.mode is StreamMode.REPLACING
    assert rec.replacement == "New body"
