"""压缩相关提示词模板

模板占位符使用 LlamaIndex PromptTemplate 的 ``{name}`` 语法。
"""

DEFAULT_SUMMARY_PROMPT = """用最精简的方式总结以下对话，要求：
1.用分号分隔不同事件，不要换行
2.省略所有不必要的标点、空格、连接词
3.只保留关键信息：人物行为、重要事件、关系变化、地点转换
4.用简短词组而非完整句子
5.限制在{words}字以内
格式示例：角色A做了X;B回应Y;发生Z事件;地点转到W"""

RECOMPRESS_SYSTEM_PROMPT = "你是摘要压缩助手，将长摘要精简为更短的版本，保留核心信息。"

RECOMPRESS_PROMPT = """你是一个摘要压缩专家。请将以下摘要精简到{target_length}字以内，保留最重要的信息：

要求：
1. 保留关键人物、事件、关系变化
2. 删除重复信息
3. 使用更精简的表达
4. 保持时间顺序

原摘要：
{summary}"""

DEFAULT_INJECTION_TEMPLATE = """[前情提要]
{summary}

[相关历史片段]
{retrieved}"""

NO_RETRIEVED_MARKER = "(无相关历史片段)"

# 新旧摘要拼接分隔符
SUMMARY_SEPARATOR = "\n---\n"
