from __future__ import annotations

import threading

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from applecore.context import ChangeSet, ConcurrencyType, ObjectContext
from sample_models import Post, count_rows


def insert_post(context, post_id, title="t"):
    return context.manager(Post).insert_with_json({"id": post_id, "title": title})


def test_perform_resolves_future_with_block_result(context):
    future = context.perform(lambda: 42)

    assert future.result(timeout=5) == 42


def test_perform_runs_on_the_context_queue(context):
    caller = threading.current_thread().name

    worker = context.perform(lambda: threading.current_thread().name).result(timeout=5)

    assert worker != caller
    assert worker.startswith("applecore-")


def test_perform_fails_future_with_raised_error(context):
    def fail():
        raise ValueError("boom")

    future = context.perform(fail)

    assert isinstance(future.exception(timeout=5), ValueError)


def test_perform_and_wait_reraises(context):
    with pytest.raises(ValueError):
        context.perform_and_wait(lambda: int("not a number"))


def test_perform_and_wait_is_reentrant(context):
    result = context.perform_and_wait(lambda: context.perform_and_wait(lambda: "inner"))

    assert result == "inner"


def test_save_and_wait_persists_to_the_store(stack, context):
    context.save_and_wait(lambda ctx: insert_post(ctx, 1))

    other = stack.new_background_context(isolated=True)
    assert count_rows(other, Post) == 1
    other.close()


def test_save_future_fails_with_native_error_and_rolls_back(context):
    future = context.save(lambda ctx: ctx.manager(Post).insert_with_json({"id": 9}))

    assert isinstance(future.exception(timeout=5), IntegrityError)
    assert context.perform_and_wait(lambda: context.has_changes) is False


def test_save_changes_commits_parent_chain(stack):
    parent = stack.main_context
    child = stack.new_background_context()
    parent.perform_and_wait(lambda: insert_post(parent, 1, "parent"))

    child.save_and_wait(lambda ctx: insert_post(ctx, 2, "child"))

    isolated = stack.new_background_context(isolated=True)
    assert count_rows(isolated, Post) == 2
    assert parent.perform_and_wait(lambda: parent.has_changes) is False
    isolated.close()
    child.close()


def test_save_changes_without_parents_leaves_parent_pending(stack):
    parent = stack.main_context
    child = stack.new_background_context()
    parent.perform_and_wait(lambda: insert_post(parent, 1, "parent"))
    child.perform_and_wait(lambda: insert_post(child, 2, "child"))

    child.save_changes(save_parents=False)

    assert parent.perform_and_wait(lambda: parent.has_changes) is True
    child.close()


def test_saved_updates_are_merged_into_parent(stack):
    main = stack.main_context
    child = stack.new_background_context()
    child.save_and_wait(lambda ctx: insert_post(ctx, 1, "A"))
    post = main.perform_and_wait(lambda: main.manager(Post).find_with_id(1))
    assert post.title == "A"

    child.save_and_wait(
        lambda ctx: ctx.manager(Post).insert_or_update_with_json({"id": 1, "title": "B"})
    )

    assert main.perform_and_wait(lambda: post.title) == "B"
    child.close()


def test_saved_deletions_are_merged_into_parent(stack):
    main = stack.main_context
    child = stack.new_background_context()
    child.save_and_wait(lambda ctx: insert_post(ctx, 1))
    post = main.perform_and_wait(lambda: main.manager(Post).find_with_id(1))

    child.save_and_wait(lambda ctx: ctx.delete_object(ctx.manager(Post).find_with_id(1)))

    assert main.perform_and_wait(lambda: post in main.session) is False
    child.close()


def test_observe_saves_reports_inserted_identities(context):
    seen = []
    context.observe_saves(lambda ctx, changes: seen.append(changes))

    context.save_and_wait(lambda ctx: insert_post(ctx, 5))

    assert len(seen) == 1
    assert isinstance(seen[0], ChangeSet)
    [(model, identity, _)] = seen[0].inserted
    assert model is Post
    assert identity == (5,)


def test_get_returns_the_copy_owned_by_another_context(stack, context):
    context.save_and_wait(lambda ctx: insert_post(ctx, 1))
    original = context.perform_and_wait(lambda: context.manager(Post).find_with_id(1))
    other = stack.new_background_context(isolated=True)

    copy = other.perform_and_wait(lambda: other.get(original))

    assert copy is not original
    assert copy.id == 1
    other.close()


def test_get_rejects_unsaved_objects(context):
    pending = context.perform_and_wait(lambda: context.insert(Post))

    with pytest.raises(ValueError):
        context.get(pending)


def test_of_wraps_a_session_once(stack):
    session = Session(bind=stack.engine)

    wrapped = ObjectContext.of(session)

    assert ObjectContext.of(session) is wrapped
    assert ObjectContext.of(wrapped) is wrapped
    assert wrapped.concurrency_type is ConcurrencyType.PRIVATE_QUEUE
    wrapped.close()


def test_with_bind_requires_bind_or_parent():
    with pytest.raises(ValueError):
        ObjectContext.with_bind()


def test_closed_context_rejects_work(stack):
    context = stack.new_background_context()
    context.close()

    with pytest.raises(RuntimeError):
        context.perform(lambda: None)


@pytest.mark.asyncio
async def test_async_save_and_perform(context):
    await context.save_async(lambda ctx: insert_post(ctx, 1))

    total = await context.perform_async(lambda: context.query(Post).count())

    assert total == 1
