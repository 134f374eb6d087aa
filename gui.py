"""
Gradio GUI for the knowledge base client.

Web interface for uploading documents as knowledge bases and asking
questions against the selected ones.
"""

import os
from pathlib import Path
from typing import List, Optional, Tuple

import gradio as gr
from dotenv import load_dotenv

from kbclient import KnowledgeBaseSession, KnowledgeBaseError
from kbclient.models import Role, format_file_size
from kbclient.session.upload import ACCEPTED_EXTENSIONS


class GradioApp:
    """
    Gradio application for the knowledge base client.

    One KnowledgeBaseSession backs the whole page. Handlers call into it and
    wait on the returned futures.
    """

    def __init__(self, session: Optional[KnowledgeBaseSession] = None):
        """
        Initialize the Gradio app.

        Args:
            session: Session to use (None = one configured from the environment)
        """
        self._session = session or KnowledgeBaseSession()
        self._started = False

        print("[GUI] Initializing Gradio app...")

    def _ensure_session(self) -> KnowledgeBaseSession:
        """Start the session on first use."""
        if not self._started:
            self._started = True
            try:
                self._session.start().get(timeout=self._session.timeout)
                print("[GUI] Session started")
            except (KnowledgeBaseError, TimeoutError) as e:
                gr.Warning(f"加载知识库列表失败: {e}")
        return self._session

    def _cleanup(self):
        """Cleanup session on shutdown."""
        print("[GUI] Shutting down session...")
        self._session.shutdown(wait=True, timeout=30)

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def _kb_choices(self) -> List[Tuple[str, int]]:
        return [
            (f"{kb.name} ({format_file_size(kb.file_size)} · {kb.question_count} 次提问)", kb.id)
            for kb in self._session.registry.entries
        ]

    def _render_scope(self) -> str:
        selected = sorted(self._session.selection.ids)
        if not selected:
            return "请先选择一个知识库"
        if len(selected) == 1:
            kb = self._session.registry.get(selected[0])
            name = kb.name if kb else "知识库"
            return f"### {name}"
        return f"### 已选择 {len(selected)} 个知识库\n\n将综合多个知识库的内容回答您的问题"

    def _render_transcript(self) -> str:
        turns = self._session.transcript.turns
        if not turns:
            return "开始提问吧！"
        lines = []
        for turn in turns:
            if turn.role is Role.USER:
                lines.append(f"**你** ({turn.created_at}):\n\n{turn.content}")
            elif turn.is_error:
                lines.append(f"**AI** ({turn.created_at}):\n\n> {turn.content}")
            else:
                source = f" · 来自 {turn.knowledge_base_name}" if turn.knowledge_base_name else ""
                lines.append(f"**AI** ({turn.created_at}{source}):\n\n{turn.content}")
        if self._session.query.is_pending:
            lines.append("_正在思考..._")
        return "\n\n---\n\n".join(lines)

    def _list_updates(self):
        choices = self._kb_choices()
        return (
            gr.CheckboxGroup(choices=choices, value=sorted(self._session.selection.ids)),
            gr.Dropdown(choices=choices, value=None),
            self._render_scope(),
            self._render_transcript(),
        )

    # ------------------------------------------------------------------
    # Query tab handlers
    # ------------------------------------------------------------------

    def _refresh(self):
        """Reload the knowledge base list."""
        session = self._ensure_session()
        try:
            session.registry.refresh().get(timeout=session.timeout)
        except (KnowledgeBaseError, TimeoutError) as e:
            gr.Warning(f"加载知识库列表失败: {e}")
        return self._list_updates()

    def _change_selection(self, selected: Optional[List[int]]):
        """Apply checkbox changes to the selection."""
        session = self._ensure_session()
        wanted = set(selected or [])
        current = session.selection.ids
        for kb_id in sorted(wanted ^ current):
            session.selection.toggle(kb_id)
        return self._render_scope(), self._render_transcript()

    def _ask(self, question: str):
        """
        Ask a question against the current selection.

        Args:
            question: User's question

        Returns:
            Tuple of (transcript_markdown, question_box_value)
        """
        session = self._ensure_session()
        future = session.query.ask(question)
        if future is None:
            if session.query.last_error:
                gr.Warning(session.query.last_error)
            return self._render_transcript(), question

        try:
            future.get(timeout=session.timeout)
        except TimeoutError:
            gr.Warning("请求超时，请稍后重试")
        return self._render_transcript(), ""

    def _request_delete(self, kb_id: Optional[int]):
        """Open the delete confirmation for the chosen knowledge base."""
        session = self._ensure_session()
        kb = session.registry.get(kb_id) if kb_id is not None else None
        if kb is None:
            gr.Warning("请先选择要删除的知识库")
            return gr.Markdown(visible=False), gr.Row(visible=False)
        pending = session.deletion.request_delete(kb.id, kb.name)
        if pending is None:
            gr.Warning("正在删除，请稍候")
            return gr.Markdown(visible=True), gr.Row(visible=True)
        return gr.Markdown(value=pending.prompt, visible=True), gr.Row(visible=True)

    def _confirm_delete(self):
        """Carry out the pending deletion."""
        session = self._ensure_session()
        future = session.deletion.confirm()
        if future is None:
            return (gr.Markdown(visible=session.deletion.pending is not None),
                    gr.Row(visible=session.deletion.pending is not None),
                    *self._list_updates())

        try:
            deleted = future.get(timeout=session.timeout)
        except TimeoutError:
            deleted = False
        if not deleted:
            gr.Warning(session.deletion.error or "删除失败，请稍后重试")
            return gr.Markdown(visible=True), gr.Row(visible=True), *self._list_updates()

        gr.Info("知识库已删除")
        self._wait_for_refresh(session.deletion.last_refresh)
        return gr.Markdown(visible=False), gr.Row(visible=False), *self._list_updates()

    def _cancel_delete(self):
        """Close the delete confirmation."""
        session = self._ensure_session()
        if not session.deletion.cancel():
            gr.Warning("正在删除，请稍候")
            return gr.Markdown(visible=True), gr.Row(visible=True)
        return gr.Markdown(visible=False), gr.Row(visible=False)

    def _wait_for_refresh(self, refresh):
        """Wait for the list refresh a completed upload or delete issued."""
        if refresh is None:
            return
        try:
            refresh.get(timeout=self._session.timeout)
        except (KnowledgeBaseError, TimeoutError) as e:
            gr.Warning(f"加载知识库列表失败: {e}")

    # ------------------------------------------------------------------
    # Upload tab handler
    # ------------------------------------------------------------------

    def _upload(self, file_path: Optional[str], name: str):
        """
        Upload a document as a knowledge base.

        Args:
            file_path: Uploaded file path
            name: Optional knowledge base name

        Returns:
            Tuple of (status_markdown, kb_select, delete_target, scope, transcript)
        """
        session = self._ensure_session()
        if not file_path:
            return "错误: 请先选择文件", *self._list_updates()

        session.upload.select_file(Path(file_path), name=name)
        future = session.upload.submit()
        if future is None:
            return f"错误: {session.upload.error}", *self._list_updates()

        try:
            result = future.get(timeout=session.timeout)
        except TimeoutError:
            return "错误: 上传超时，请重试", *self._list_updates()
        if result is None:
            return f"错误: {session.upload.error}", *self._list_updates()

        self._wait_for_refresh(session.upload.last_refresh)

        status = f"""
## 上传完成

- **知识库**: {result.name} (ID {result.id})
- **文件大小**: {format_file_size(result.file_size)}
- **提取文本**: {result.content_length} 字符
"""
        if result.duplicate:
            status += "\n> 检测到相同内容的文件，已复用已存储的文件\n"
        return status, *self._list_updates()

    def build_ui(self):
        """Build the Gradio UI."""
        with gr.Blocks(title="知识库问答") as app:
            gr.Markdown(
                """
                # 知识库问答

                上传文档，AI 将基于知识库内容回答您的问题。
                """
            )

            with gr.Tabs():
                # Query Tab
                with gr.Tab("知识库问答"):
                    with gr.Row():
                        with gr.Column(scale=1):
                            kb_select = gr.CheckboxGroup(
                                label="知识库",
                                choices=[],
                                value=[]
                            )
                            refresh_btn = gr.Button("刷新列表", variant="secondary")
                            delete_target = gr.Dropdown(
                                label="删除知识库",
                                choices=[],
                                value=None
                            )
                            delete_btn = gr.Button("删除", variant="stop")
                            delete_prompt = gr.Markdown(visible=False)
                            with gr.Row(visible=False) as delete_actions:
                                confirm_btn = gr.Button("确定删除", variant="stop")
                                cancel_btn = gr.Button("取消")

                        with gr.Column(scale=2):
                            scope_info = gr.Markdown("请先选择一个知识库")
                            transcript_view = gr.Markdown("开始提问吧！")
                            question_box = gr.Textbox(
                                label="问题",
                                placeholder="输入您的问题...",
                                lines=2
                            )
                            ask_btn = gr.Button("发送", variant="primary", size="lg")

                    list_outputs = [kb_select, delete_target, scope_info, transcript_view]

                    app.load(fn=self._refresh, outputs=list_outputs)
                    refresh_btn.click(fn=self._refresh, outputs=list_outputs)
                    kb_select.input(
                        fn=self._change_selection,
                        inputs=[kb_select],
                        outputs=[scope_info, transcript_view]
                    )
                    ask_btn.click(
                        fn=self._ask,
                        inputs=[question_box],
                        outputs=[transcript_view, question_box],
                        show_progress="full"
                    )
                    question_box.submit(
                        fn=self._ask,
                        inputs=[question_box],
                        outputs=[transcript_view, question_box],
                        show_progress="full"
                    )
                    delete_btn.click(
                        fn=self._request_delete,
                        inputs=[delete_target],
                        outputs=[delete_prompt, delete_actions]
                    )
                    confirm_btn.click(
                        fn=self._confirm_delete,
                        outputs=[delete_prompt, delete_actions, *list_outputs],
                        show_progress="full"
                    )
                    cancel_btn.click(
                        fn=self._cancel_delete,
                        outputs=[delete_prompt, delete_actions]
                    )

                # Upload Tab
                with gr.Tab("上传知识库"):
                    with gr.Row():
                        with gr.Column(scale=1):
                            upload_file = gr.File(
                                label="上传文档",
                                file_types=list(ACCEPTED_EXTENSIONS),
                                file_count="single",
                                type="filepath"
                            )
                            upload_name = gr.Textbox(
                                label="知识库名称（可选）",
                                placeholder="留空则使用文件名",
                                value=""
                            )
                            upload_btn = gr.Button("开始上传", variant="primary", size="lg")

                        with gr.Column(scale=1):
                            upload_status = gr.Markdown(label="状态")

                    upload_btn.click(
                        fn=self._upload,
                        inputs=[upload_file, upload_name],
                        outputs=[upload_status, *list_outputs],
                        show_progress="full"
                    )

            gr.Markdown(
                f"""
                ---

                **提示**:
                - 支持 PDF、DOCX、DOC、TXT、MD 格式，最大 {format_file_size(self._session.upload.max_bytes)}
                - 可同时选择多个知识库，AI 将综合其内容回答
                - 切换知识库会清空当前对话
                """
            )

        return app

    def launch(self, server_port: int = 7860):
        """
        Launch the Gradio app.

        Args:
            server_port: Port to run the server on
        """
        app = self.build_ui()

        # Register cleanup on close
        app.close = lambda: self._cleanup()

        app.launch(
            server_name="127.0.0.1",
            server_port=server_port,
            share=False,
            show_error=True,
            quiet=False,
        )


def main():
    """Main entry point for GUI mode."""
    load_dotenv()

    # Get port from environment or use default
    port = int(os.environ.get('GRADIO_PORT', 7860))

    app = GradioApp()
    app.launch(server_port=port)


if __name__ == '__main__':
    main()
