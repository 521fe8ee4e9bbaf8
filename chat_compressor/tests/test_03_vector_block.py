"""
测试 3：MessageVectorBlock
- 逐条向量化：偏移、截断、进度、单条失败
- 检索：阈值、top_k、排序、失败返回空
"""

import pytest

from chat_compressor.blocks.message_vector import MessageVectorBlock
from chat_compressor.state import CompressionState, VectorEntry

from conftest import TableEmbedding, chat


def make_block(embed_model, **kwargs) -> MessageVectorBlock:
    kwargs.setdefault("delay_seconds", 0)
    return MessageVectorBlock(embed_model=embed_model, **kwargs)


def state_with(*entries) -> CompressionState:
    return CompressionState(
        summary="摘要",
        compressed_until_index=len(entries),
        vectors=[
            VectorEntry(text=text, vector=vector, index=i)
            for i, (text, vector) in enumerate(entries)
        ],
    )


@pytest.mark.asyncio
async def test_vectorize_messages_in_order():
    embed_model = TableEmbedding(
        table={"Alice: 早上好": [1.0, 0.0], "Bob: 早": [0.0, 1.0]}
    )
    block = make_block(embed_model)
    progress = []

    entries = await block.avectorize(
        chat("Alice|早上好", "Bob|早", "Alice|吃了吗"), 5, progress.append
    )

    assert [e.text for e in entries] == ["Alice: 早上好", "Bob: 早", "Alice: 吃了吗"]
    assert [e.index for e in entries] == [5, 6, 7]
    assert entries[0].vector == [1.0, 0.0]
    assert entries[1].vector == [0.0, 1.0]
    assert progress == [33, 67, 100]


@pytest.mark.asyncio
async def test_vectorize_skips_failed_message():
    """单条失败只跳过该条，进度照常推进"""
    embed_model = TableEmbedding(fail_on=["坏消息"])
    block = make_block(embed_model)
    progress = []

    entries = await block.avectorize(
        chat("A|好消息", "B|坏消息", "A|又一条"), 0, progress.append
    )

    assert [e.index for e in entries] == [0, 2]
    assert progress == [33, 67, 100]


@pytest.mark.asyncio
async def test_vectorize_truncates_embedded_text():
    embed_model = TableEmbedding()
    block = make_block(embed_model, max_chars=2000)
    long_text = "长" * 2500

    entries = await block.avectorize(chat(f"A|{long_text}"))

    assert len(embed_model.seen[0]) == 2000
    # 保存的是完整文本
    assert entries[0].text == f"A: {long_text}"


@pytest.mark.asyncio
async def test_vectorize_empty_input():
    progress = []
    entries = await make_block(TableEmbedding()).avectorize([], 0, progress.append)
    assert entries == []
    assert progress == []


@pytest.mark.asyncio
async def test_retrieve_exact_match():
    embed_model = TableEmbedding(table={"谁说了 hello": [1.0, 0.0]})
    block = make_block(embed_model)
    state = state_with(("A: hello", [1, 0]), ("B: world", [0, 1]))

    results = await block.aretrieve("谁说了 hello", state, top_k=5, threshold=0.5)

    assert len(results) == 1
    assert results[0].text == "A: hello"
    assert results[0].index == 0
    assert results[0].similarity == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_retrieve_ranks_and_limits():
    embed_model = TableEmbedding(default_vector=[1.0, 0.0])
    block = make_block(embed_model)
    state = state_with(
        ("低", [1.0, 3.0]),
        ("高", [1.0, 0.1]),
        ("中", [1.0, 1.0]),
        ("反向", [-1.0, 0.0]),
        ("次高", [1.0, 0.2]),
    )

    results = await block.aretrieve("查询", state, top_k=3, threshold=0.3)

    assert [r.text for r in results] == ["高", "次高", "中"]
    assert all(r.similarity >= 0.3 for r in results)
    similarities = [r.similarity for r in results]
    assert similarities == sorted(similarities, reverse=True)


@pytest.mark.asyncio
async def test_retrieve_ties_keep_insertion_order():
    block = make_block(TableEmbedding(default_vector=[1.0, 0.0]))
    state = state_with(("第一", [2.0, 0.0]), ("第二", [1.0, 0.0]), ("第三", [3.0, 0.0]))

    results = await block.aretrieve("查询", state, top_k=5, threshold=0.0)

    assert [r.text for r in results] == ["第一", "第二", "第三"]


@pytest.mark.asyncio
async def test_retrieve_uses_block_defaults():
    block = make_block(
        TableEmbedding(default_vector=[1.0, 0.0]),
        similarity_top_k=1,
        similarity_threshold=0.9,
    )
    state = state_with(("近", [1.0, 0.1]), ("远", [0.0, 1.0]))

    results = await block.aretrieve("查询", state)

    assert [r.text for r in results] == ["近"]


@pytest.mark.asyncio
async def test_retrieve_without_vectors():
    """没有向量时直接返回空，不调用 embedding"""
    embed_model = TableEmbedding()
    block = make_block(embed_model)

    assert await block.aretrieve("任何内容", CompressionState(summary="摘要")) == []
    assert await block.aretrieve("任何内容", None) == []
    assert embed_model.seen == []


@pytest.mark.asyncio
async def test_retrieve_query_failure_returns_empty():
    block = make_block(TableEmbedding(fail_on=["查询"]))
    state = state_with(("A: hello", [1, 0]))

    assert await block.aretrieve("查询", state, top_k=5, threshold=0.0) == []


@pytest.mark.asyncio
async def test_retrieve_truncates_query():
    embed_model = TableEmbedding()
    block = make_block(embed_model, max_chars=10)
    state = state_with(("A: hello", [0, 1]))

    await block.aretrieve("问" * 50, state)

    assert embed_model.seen == ["问" * 10]


def test_from_config(config):
    block = MessageVectorBlock.from_config(TableEmbedding(), config)
    assert block.similarity_top_k == config.retrieve_count
    assert block.similarity_threshold == config.similarity_threshold
    assert block.max_chars == config.max_embed_chars
    assert block.delay_seconds == 0


@pytest.mark.asyncio
async def test_vectorize_progress_rounds_half_up():
    """8 条消息时 12.5% → 13，62.5% → 63"""
    progress = []
    messages = chat(*[f"A|第{i}条" for i in range(8)])

    await make_block(TableEmbedding()).avectorize(messages, 0, progress.append)

    assert progress == [13, 25, 38, 50, 63, 75, 88, 100]


@pytest.mark.asyncio
async def test_vectorize_survives_failing_progress_callback():
    """进度回调出错不影响已生成的向量"""
    calls = []

    def on_progress(value):
        calls.append(value)
        raise RuntimeError("ui gone")

    entries = await make_block(TableEmbedding()).avectorize(
        chat("A|一", "B|二", "A|三"), 0, on_progress
    )

    assert [e.index for e in entries] == [0, 1, 2]
    assert calls == [33, 67, 100]


@pytest.mark.asyncio
async def test_check_embedding():
    assert await make_block(TableEmbedding()).acheck_embedding() is True
    assert await make_block(TableEmbedding(fail_on=["test"])).acheck_embedding() is False
    assert await make_block(TableEmbedding(default_vector=[])).acheck_embedding() is False
