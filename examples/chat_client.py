#!/usr/bin/env python
"""Smoke client for a running deepseek-gateway."""
import sys
import time

import requests

URL = "http://127.0.0.1:8787"


def check_service():
    """Check if service is running."""
    try:
        resp = requests.get(f"{URL}/api/health", timeout=5)
        result = resp.json()
        print(f"Service: {result.get('status')} | {result.get('service')} {result.get('version')}")
        return True
    except Exception as e:
        print(f"❌ Service not running: {e}")
        return False


def send_chat(prompt):
    """Non-streaming chat completion."""
    payload = {"messages": [{"role": "user", "content": prompt}]}

    start_time = time.time()
    try:
        resp = requests.post(f"{URL}/api/chat", json=payload, timeout=300)
        elapsed = time.time() - start_time

        if resp.status_code == 200:
            result = resp.json()
            content = result["choices"][0]["message"]["content"]
            print(f"✅ Chat ({elapsed:.2f}s, {result.get('usage', {}).get('total_tokens')} tokens): {content[:150]}")
            return result
        print(f"❌ Chat error: {resp.json().get('error')}")
        return None
    except Exception as e:
        print(f"❌ Chat error: {e}")
        return None


def stream_chat(prompt):
    """Streaming chat completion; prints raw server-sent events."""
    payload = {"messages": [{"role": "user", "content": prompt}], "stream": True}

    try:
        with requests.post(f"{URL}/api/chat", json=payload, stream=True, timeout=300) as resp:
            if resp.status_code != 200:
                print(f"❌ Stream error: {resp.text}")
                return False
            events = 0
            for line in resp.iter_lines(decode_unicode=True):
                if line.startswith("data:"):
                    events += 1
            print(f"✅ Stream finished: {events} events")
            return True
    except Exception as e:
        print(f"❌ Stream error: {e}")
        return False


def send_graphql(prompt):
    """sendMessage through the GraphQL endpoint, then read back history."""
    mutation = "mutation SendMessage($input: ChatInput!) { sendMessage(input: $input) { id usage { total_tokens } } }"
    variables = {"input": {"messages": [{"role": "user", "content": prompt}]}}

    try:
        resp = requests.post(f"{URL}/api/graphql", json={"query": mutation, "variables": variables}, timeout=300)
        result = resp.json()
        if result.get("errors"):
            print(f"❌ GraphQL error: {result['errors'][0]['message']}")
            return False
        print(f"✅ GraphQL sendMessage: {result['data'].get('id')}")

        resp = requests.post(
            f"{URL}/graphql",
            json={"query": "query { chatHistory(limit: 5) { model messagesCount } }", "variables": {"limit": 5}},
            timeout=10,
        )
        print(f"✅ GraphQL chatHistory: {len(resp.json().get('data') or [])} entries")
        return True
    except Exception as e:
        print(f"❌ GraphQL error: {e}")
        return False


def show_stats():
    try:
        resp = requests.get(f"{URL}/api/stats", timeout=10)
        result = resp.json()
        if resp.status_code == 200:
            print(f"✅ Stats: {result['totalChats']} chats logged")
        else:
            print(f"⚠️  Stats unavailable: {result.get('error')}")
    except Exception as e:
        print(f"❌ Stats error: {e}")


def main():
    prompt = sys.argv[1] if len(sys.argv) > 1 else "Hello, how are you?"

    print(f"Testing deepseek-gateway at {URL}")
    print("=" * 40)

    if not check_service():
        return

    send_chat(prompt)
    stream_chat(prompt)
    send_graphql(prompt)
    show_stats()

    print("✅ All checks completed")


if __name__ == "__main__":
    main()
