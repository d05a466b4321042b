import html
import json

from linenote.models.document import Document


PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title} - linenote</title>
<style>{style}</style>
</head>
<body>
<header>
  <h1>{title}</h1>
  <span id="count">0 comments</span>
  <button id="submit">Submit &amp; Exit</button>
</header>
<main>
  <section id="preview" hidden></section>
  <table id="grid"><tbody></tbody></table>
  <p id="empty" hidden>No changes.</p>
</main>
<div id="card" hidden>
  <div id="card-target"></div>
  <textarea id="card-text" rows="5" placeholder="Comment"></textarea>
  <div class="actions">
    <button id="card-save">Save</button>
    <button id="card-clear">Clear</button>
    <button id="card-close">Close</button>
  </div>
</div>
<div id="modal" hidden>
  <div class="dialog">
    <p id="modal-summary"></p>
    <label for="summary">Overall comment (optional)</label>
    <textarea id="summary" rows="4"></textarea>
    <div class="actions">
      <button id="modal-submit">Submit</button>
      <button id="modal-cancel">Cancel</button>
    </div>
  </div>
</div>
<div id="recovery" hidden>
  <div class="dialog">
    <p id="recovery-summary"></p>
    <div class="actions">
      <button id="recovery-restore">Restore</button>
      <button id="recovery-discard">Discard</button>
    </div>
  </div>
</div>
<script id="data" type="application/json">{data}</script>
<script>{script}</script>
</body>
</html>
"""


PAGE_STYLE = """
body { font-family: system-ui, sans-serif; margin: 0; color: #222; }
header { position: sticky; top: 0; display: flex; gap: 12px; align-items: center;
  padding: 8px 16px; background: #f6f8fa; border-bottom: 1px solid #d0d7de; z-index: 2; }
header h1 { font-size: 16px; margin: 0; flex: 1; }
main { padding: 8px 16px; }
#preview { border: 1px solid #d0d7de; padding: 8px 16px; margin-bottom: 12px; }
table { border-collapse: collapse; font-family: ui-monospace, monospace; font-size: 13px; }
td { border: 1px solid #eaeef2; padding: 2px 6px; white-space: pre-wrap; vertical-align: top; cursor: pointer; }
td.num { color: #8c959f; text-align: right; user-select: none; }
td.selected { outline: 2px solid #0969da; }
td.commented { background: #fff8c5; }
tr.file td { background: #ddf4ff; font-weight: bold; }
tr.hunk td { background: #f6f8fa; color: #57606a; }
tr.added td { background: #e6ffec; }
tr.removed td { background: #ffebe9; }
tr.hidden { display: none; }
#card { position: fixed; right: 16px; bottom: 16px; width: 360px; background: #fff;
  border: 1px solid #d0d7de; box-shadow: 0 4px 12px rgba(0,0,0,.15); padding: 12px; z-index: 3; }
#card textarea, #modal textarea { width: 100%; box-sizing: border-box; }
#modal, #recovery { position: fixed; inset: 0; background: rgba(0,0,0,.3); display: flex;
  align-items: center; justify-content: center; z-index: 4; }
#modal[hidden], #recovery[hidden] { display: none; }
#modal .dialog, #recovery .dialog { background: #fff; padding: 16px; width: 420px; }
.actions { display: flex; gap: 8px; margin-top: 8px; }
"""


PAGE_SCRIPT = """
const DATA = JSON.parse(document.getElementById('data').textContent);
const tbody = document.querySelector('#grid tbody');
const card = document.getElementById('card');
const cardText = document.getElementById('card-text');
const comments = {};
const STORAGE_KEY = 'linenote:comments:' + DATA.title;
const STORAGE_TTL = 3 * 60 * 60 * 1000;
let anchor = null;
let current = null;
let sent = false;

function saveStored() {
  try {
    if (Object.keys(comments).length === 0) {
      localStorage.removeItem(STORAGE_KEY);
      return;
    }
    localStorage.setItem(STORAGE_KEY, JSON.stringify({ comments, timestamp: Date.now() }));
  } catch (err) {
    console.warn('linenote: could not save comments', err);
  }
}

function loadStored() {
  try {
    const raw = localStorage.getItem(STORAGE_KEY);
    if (!raw) return null;
    const stored = JSON.parse(raw);
    if (!stored.comments || Date.now() - stored.timestamp > STORAGE_TTL) {
      localStorage.removeItem(STORAGE_KEY);
      return null;
    }
    return stored;
  } catch (err) {
    console.warn('linenote: could not read saved comments', err);
    return null;
  }
}

function clearStored() {
  try {
    localStorage.removeItem(STORAGE_KEY);
  } catch (err) {
    console.warn('linenote: could not clear saved comments', err);
  }
}

function timeAgo(timestamp) {
  const minutes = Math.floor((Date.now() - timestamp) / 60000);
  if (minutes < 1) return 'just now';
  if (minutes < 60) return minutes + ' min ago';
  return Math.floor(minutes / 60) + ' h ago';
}

function rowInfo(index) {
  return DATA.diff ? DATA.diff[index] : null;
}

function render() {
  if (DATA.preview) {
    const preview = document.getElementById('preview');
    preview.innerHTML = DATA.preview;
    preview.hidden = false;
  }
  if (DATA.mode === 'diff' && DATA.rows.length === 0) {
    document.getElementById('empty').hidden = false;
  }
  DATA.rows.forEach((cells, r) => {
    const tr = document.createElement('tr');
    const info = rowInfo(r);
    if (info) {
      tr.className = info.kind === 'line' ? info.line_type : info.kind;
      tr.dataset.file = info.file_index;
    }
    const num = document.createElement('td');
    num.className = 'num';
    num.textContent = info && info.line_number ? info.line_number : (info ? '' : r + 1);
    tr.appendChild(num);
    for (let c = 0; c < DATA.cols; c++) {
      const td = document.createElement('td');
      td.textContent = cells[c] !== undefined ? cells[c] : '';
      td.dataset.row = r;
      td.dataset.col = c;
      tr.appendChild(td);
    }
    tbody.appendChild(tr);
  });
  if (DATA.diff) {
    DATA.diff.filter((row) => row.kind === 'file' && row.collapsed)
      .forEach((row) => toggleFile(row.file_index, true));
  }
}

function toggleFile(fileIndex, hide) {
  tbody.querySelectorAll('tr[data-file="' + fileIndex + '"]').forEach((tr) => {
    if (!tr.classList.contains('file')) tr.classList.toggle('hidden', hide);
  });
}

function keyFor(sel) {
  if (sel.start_row === sel.end_row && sel.start_col === sel.end_col) {
    return sel.start_row + '-' + sel.start_col;
  }
  return sel.start_row + '-' + sel.start_col + ':' + sel.end_row + '-' + sel.end_col;
}

function cellsIn(sel) {
  const cells = [];
  for (let r = sel.start_row; r <= sel.end_row; r++) {
    for (let c = sel.start_col; c <= sel.end_col; c++) {
      const td = tbody.querySelector('td[data-row="' + r + '"][data-col="' + c + '"]');
      if (td) cells.push(td);
    }
  }
  return cells;
}

function openCard(sel) {
  tbody.querySelectorAll('td.selected').forEach((td) => td.classList.remove('selected'));
  cellsIn(sel).forEach((td) => td.classList.add('selected'));
  current = sel;
  const key = keyFor(sel);
  document.getElementById('card-target').textContent = 'Row ' + key;
  cardText.value = comments[key] ? comments[key].text : '';
  card.hidden = false;
  cardText.focus();
}

function closeCard() {
  card.hidden = true;
  tbody.querySelectorAll('td.selected').forEach((td) => td.classList.remove('selected'));
  current = null;
}

function refresh() {
  tbody.querySelectorAll('td.commented').forEach((td) => td.classList.remove('commented'));
  Object.values(comments).forEach((comment) => {
    const sel = comment.is_range ? comment
      : { start_row: comment.row, start_col: comment.col, end_row: comment.row, end_col: comment.col };
    cellsIn(sel).forEach((td) => td.classList.add('commented'));
  });
  const count = Object.keys(comments).length;
  document.getElementById('count').textContent = count + (count === 1 ? ' comment' : ' comments');
}

function saveCurrent() {
  if (!current) return;
  const key = keyFor(current);
  const text = cardText.value.trim();
  if (!text) {
    delete comments[key];
  } else if (key.includes(':')) {
    comments[key] = Object.assign({}, current, { text, is_range: true });
  } else {
    const td = cellsIn(current)[0];
    comments[key] = { row: current.start_row, col: current.start_col, text, value: td ? td.textContent : '' };
  }
  saveStored();
  refresh();
  closeCard();
}

tbody.addEventListener('click', (event) => {
  const td = event.target.closest('td');
  if (!td) return;
  const tr = td.parentElement;
  if (tr.classList.contains('file') && td.classList.contains('num')) {
    const fileIndex = tr.dataset.file;
    const next = tbody.querySelector('tr[data-file="' + fileIndex + '"]:not(.file)');
    if (next) toggleFile(fileIndex, !next.classList.contains('hidden'));
    return;
  }
  if (td.dataset.row === undefined) return;
  const row = Number(td.dataset.row);
  const col = Number(td.dataset.col);
  if (event.shiftKey && anchor) {
    openCard({
      start_row: Math.min(anchor.row, row), start_col: Math.min(anchor.col, col),
      end_row: Math.max(anchor.row, row), end_col: Math.max(anchor.col, col),
    });
  } else {
    anchor = { row, col };
    openCard({ start_row: row, start_col: col, end_row: row, end_col: col });
  }
});

document.getElementById('card-save').addEventListener('click', saveCurrent);
document.getElementById('card-close').addEventListener('click', closeCard);
document.getElementById('card-clear').addEventListener('click', () => {
  cardText.value = '';
  saveCurrent();
});
cardText.addEventListener('keydown', (event) => {
  if (event.key === 'Enter' && (event.metaKey || event.ctrlKey)) saveCurrent();
  if (event.key === 'Escape') closeCard();
});

function payload(reason) {
  const data = {
    file: DATA.title,
    mode: DATA.mode,
    reason,
    at: new Date().toISOString(),
    comments: Object.values(comments),
  };
  const summary = document.getElementById('summary').value.trim();
  if (summary) data.summary = summary;
  return data;
}

function sendAndExit(reason) {
  if (sent) return;
  sent = true;
  clearStored();
  const blob = new Blob([JSON.stringify(payload(reason))], { type: 'application/json' });
  navigator.sendBeacon('/exit', blob);
}

const modal = document.getElementById('modal');
document.getElementById('submit').addEventListener('click', () => {
  const count = Object.keys(comments).length;
  document.getElementById('modal-summary').textContent = count === 0
    ? 'No comments added yet.'
    : count === 1 ? '1 comment will be submitted.' : count + ' comments will be submitted.';
  modal.hidden = false;
});
document.getElementById('modal-cancel').addEventListener('click', () => { modal.hidden = true; });
document.getElementById('modal-submit').addEventListener('click', () => {
  modal.hidden = true;
  sendAndExit('button');
  setTimeout(() => window.close(), 200);
});

const events = new EventSource('/sse');
events.onmessage = (event) => {
  if (event.data === 'reload' && !sent) location.reload();
};

function checkRecovery() {
  const stored = loadStored();
  if (!stored) return;
  const count = Object.keys(stored.comments).length;
  if (count === 0) return;
  const recovery = document.getElementById('recovery');
  document.getElementById('recovery-summary').textContent =
    count + (count === 1 ? ' unsent comment' : ' unsent comments') + ' from ' + timeAgo(stored.timestamp) + '.';
  document.getElementById('recovery-restore').addEventListener('click', () => {
    Object.assign(comments, stored.comments);
    refresh();
    recovery.hidden = true;
  });
  document.getElementById('recovery-discard').addEventListener('click', () => {
    clearStored();
    recovery.hidden = true;
  });
  recovery.hidden = false;
}

render();
checkRecovery();
"""


def _diff_rows(document: Document) -> list[dict] | None:
    if document.diff is None:
        return None
    return [row.model_dump(mode="json", exclude_none=True) for row in document.diff.rows]


def _script_json(data: dict) -> str:
    """JSON safe to embed inside a <script> element."""
    return json.dumps(data, ensure_ascii=False).replace("<", "\\u003c")


def build_page(document: Document) -> str:
    """Build the complete review page for a document."""
    data = {
        "mode": document.mode.value,
        "title": document.title,
        "rows": document.rows,
        "cols": document.cols,
        "preview": document.preview_html,
        "diff": _diff_rows(document),
    }
    return PAGE_TEMPLATE.format(
        title=html.escape(document.title),
        style=PAGE_STYLE,
        script=PAGE_SCRIPT,
        data=_script_json(data),
    )
