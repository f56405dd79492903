import os
import time

import gymnasium as gym
import matplotlib.pyplot as plt
import numpy as np
import torch
from sb3_contrib import RecurrentPPO
from stable_baselines3 import PPO, SAC
from stable_baselines3.common.env_checker import check_env
from stable_baselines3.common.evaluation import evaluate_policy
from stable_baselines3.common.logger import configure
from stable_baselines3.common.monitor import Monitor
from stable_baselines3.common.results_plotter import load_results, ts2xy
from stable_baselines3.common.vec_env import DummyVecEnv

from nectar_config import NectarConfig, load_config
from nectar_env import HummingbirdEnv
from nectar_logging import setup_logging
from training_utils import NectarCallback, SaveOnIntervalCallback, visualise_training_logs

log_dir = "train_hummingbird/gym/"
models_dir = "train_hummingbird/models/"
os.makedirs(log_dir, exist_ok=True)
os.makedirs(models_dir, exist_ok=True)


def make_env_wrapper(config: NectarConfig, rank=0):
    """Helper function to create environment factory for vectorized training."""
    def _init():
        env = HummingbirdEnv(config=config, training_mode=True)
        env = Monitor(env, os.path.join(log_dir, f"env_{rank}"),
                      info_keywords=("nectar_obtained", "spawn_failures"))
        return env
    return _init


def make_vec_env(config: NectarConfig, n_envs: int) -> DummyVecEnv:
    print(f"Creating {n_envs} parallel environments...")
    return DummyVecEnv([make_env_wrapper(config, rank=i) for i in range(n_envs)])


def train_with_ppo(config: NectarConfig, n_envs=4, total_timesteps=2_000_000):
    """Train using PPO with an MLP policy (the usual choice for this task)."""
    env = make_vec_env(config, n_envs)

    print("=" * 50)
    print(f"Training with PPO - {n_envs} parallel envs")
    print("=" * 50)

    device = 'cuda' if torch.cuda.is_available() else 'cpu'
    print(f"Using device: {device}")

    model = PPO(
        "MlpPolicy",
        env,
        learning_rate=3e-4,
        n_steps=2048,
        batch_size=256,
        n_epochs=5,
        gamma=0.99,
        gae_lambda=0.95,
        clip_range=0.2,
        ent_coef=0.005,
        vf_coef=0.5,
        max_grad_norm=0.5,
        verbose=1,
        tensorboard_log=f"{log_dir}tensorboard/",
        device=device,
        policy_kwargs=dict(net_arch=[256, 256])
    )
    return _learn(model, env, "ppo", total_timesteps)


def train_with_recurrent_ppo(config: NectarConfig, n_envs=4, total_timesteps=2_000_000):
    """Train using RecurrentPPO with an LSTM policy."""
    env = make_vec_env(config, n_envs)

    print("=" * 50)
    print(f"Training with RecurrentPPO (LSTM Policy) - {n_envs} parallel envs")
    print("=" * 50)

    device = 'cuda' if torch.cuda.is_available() else 'cpu'
    print(f"Using device: {device}")

    model = RecurrentPPO(
        "MlpLstmPolicy",
        env,
        learning_rate=3e-4,
        n_steps=1024,
        batch_size=128,
        n_epochs=10,
        gamma=0.99,
        gae_lambda=0.95,
        clip_range=0.2,
        ent_coef=0.005,
        vf_coef=0.5,
        max_grad_norm=0.5,
        verbose=1,
        tensorboard_log=f"{log_dir}tensorboard/",
        device=device,
        policy_kwargs=dict(
            lstm_hidden_size=128,
            n_lstm_layers=1,
            enable_critic_lstm=True,
            net_arch=[128, 128],
        )
    )
    return _learn(model, env, "recurrent_ppo", total_timesteps)


def train_with_sac(config: NectarConfig, n_envs=1, total_timesteps=1_000_000):
    """Train using SAC (off-policy, sample efficient on continuous control)."""
    env = make_vec_env(config, n_envs)

    print("=" * 50)
    print(f"Training with SAC - {n_envs} parallel envs")
    print("=" * 50)

    device = 'cuda' if torch.cuda.is_available() else 'cpu'
    print(f"Using device: {device}")

    model = SAC(
        "MlpPolicy",
        env,
        learning_rate=3e-4,
        buffer_size=1_000_000,
        learning_starts=10_000,
        batch_size=256,
        tau=0.005,
        gamma=0.99,
        train_freq=1,
        gradient_steps=1,
        verbose=1,
        tensorboard_log=f"{log_dir}tensorboard/",
        device=device,
        policy_kwargs=dict(net_arch=[256, 256])
    )
    return _learn(model, env, "sac", total_timesteps)


def _learn(model, env, name: str, total_timesteps: int):
    model.set_logger(configure(log_dir, ["stdout", "csv", "tensorboard"]))
    checkpoint_callback = SaveOnIntervalCallback(
        save_interval=100_000,
        save_path=models_dir,
        name_prefix=f"{name}_model"
    )
    eval_callback = NectarCallback(log_dir)

    print("\nStarting training...")
    model.learn(
        total_timesteps=total_timesteps,
        callback=[checkpoint_callback, eval_callback],
        progress_bar=True
    )

    final_model_path = f"{models_dir}{name}_final"
    model.save(final_model_path)
    print(f"\nTraining complete! Final model saved to: {final_model_path}")

    print("\n" + "=" * 50)
    print("Evaluating trained model...")
    print("=" * 50)

    mean_reward, std_reward = evaluate_policy(
        model,
        env,
        n_eval_episodes=10,
        deterministic=True
    )
    print(f"Mean reward: {mean_reward:.2f} +/- {std_reward:.2f}")

    plot_learning_curve(log_dir, f"{name.upper()} Learning Curve")
    visualise_training_logs("rollout/ep_rew_mean", "Mean Episode Reward", log_dir)
    visualise_training_logs("nectar/mean_obtained", "Mean Nectar Obtained", log_dir, window=5)
    return model


def plot_learning_curve(log_dir, title="Learning Curve"):
    """Plot the learning curve from training logs."""
    results = load_results(log_dir)

    if len(results) == 0:
        print("No results to plot yet.")
        return

    results = results.sort_values('t')
    x, y = ts2xy(results, 'timesteps')

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(15, 5))

    ax1.plot(x, y, alpha=0.3, color='blue', label='Raw Reward')
    if len(y) > 100:
        window = min(100, len(y) // 10)
        y_smoothed = np.convolve(y, np.ones(window)/window, mode='valid')
        ax1.plot(x[:len(y_smoothed)], y_smoothed, color='red', linewidth=2, label='Smoothed Reward')

    ax1.set_xlabel('Timesteps')
    ax1.set_ylabel('Episode Reward')
    ax1.set_title(title)
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    if 'nectar_obtained' in results:
        ax2.plot(x, results['nectar_obtained'].values, alpha=0.3, color='green')
        ax2.set_ylabel('Nectar Obtained')
        ax2.set_title('Nectar Obtained per Episode')
    else:
        ax2.plot(x, results['l'].values, alpha=0.3, color='green')
        ax2.set_ylabel('Episode Length')
        ax2.set_title('Episode Length Over Time')
    ax2.set_xlabel('Timesteps')
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(f"{log_dir}learning_curve.png", dpi=150)
    print(f"\nLearning curve saved to: {log_dir}learning_curve.png")
    plt.close(fig)


def load_model(model_path: str, device: str):
    """Load a saved model, picking the algorithm from the file name."""
    name = os.path.basename(model_path).lower()
    if 'recurrent' in name:
        return RecurrentPPO.load(model_path, device=device), True
    if 'sac' in name:
        return SAC.load(model_path, device=device), False
    return PPO.load(model_path, device=device), False


def test_trained_model(model_path, config: NectarConfig, num_episodes=5):
    """Run a trained model in gameplay view and report nectar collected."""
    env = HummingbirdEnv(config=config, training_mode=True, render_mode="human")

    device = 'cuda' if torch.cuda.is_available() else 'cpu'
    model, use_lstm = load_model(model_path, device)
    print(f"Loaded {type(model).__name__} model")

    for episode in range(num_episodes):
        obs, info = env.reset()
        done = False
        total_reward = 0
        steps = 0

        if use_lstm:
            lstm_states = None
            episode_start = np.ones((1,), dtype=bool)

        print(f"\n{'='*50}")
        print(f"Episode {episode + 1}")
        print(f"{'='*50}")

        while not done:
            if use_lstm:
                action, lstm_states = model.predict(
                    obs,
                    state=lstm_states,
                    episode_start=episode_start,
                    deterministic=True
                )
                episode_start = np.zeros((1,), dtype=bool)
            else:
                action, _ = model.predict(obs, deterministic=True)

            obs, reward, terminated, truncated, info = env.step(action)
            done = terminated or truncated
            total_reward += reward
            steps += 1

            if steps % 100 == 0:
                print(f"  Step {steps}: Nectar {info['nectar_obtained']:.2f}, Reward: {total_reward:.2f}")

            time.sleep(0.01)

        print(f"\n Episode finished in {steps} steps")
        print(f"   Total reward: {total_reward:.2f}")
        print(f"   Nectar obtained: {info['nectar_obtained']:.2f}")
        print(f"   Flowers with nectar left: {info['flowers_remaining']}/{info['total_flowers']}")

    env.close()


if __name__ == "__main__":
    setup_logging()
    config = load_config()

    print("\n" + "="*60)
    print("Hummingbird Environment Training & Testing")
    print("="*60)

    check_env(gym.make('Hummingbird-v0', config=config).unwrapped)

    print("\nChoose an option:")
    print("1. Train with PPO - RECOMMENDED")
    print("2. Train with RecurrentPPO (LSTM)")
    print("3. Train with SAC")
    print("4. Test existing model")

    choice = input("\nEnter choice (1-4): ").strip()

    if choice == "4":
        model_path = input("\nEnter model path (without .zip extension): ").strip()
        if not os.path.exists(f"{model_path}.zip"):
            print(f"\n Error: Model file '{model_path}.zip' not found!")
            raise SystemExit(1)

        num_episodes_input = input("\nNumber of test episodes (default: 3): ").strip()
        num_episodes = int(num_episodes_input) if num_episodes_input else 3
        test_trained_model(model_path, config, num_episodes=num_episodes)

    elif choice in ["1", "2", "3"]:
        n_envs_input = input("\nNumber of parallel environments (default: 4): ").strip()
        n_envs = int(n_envs_input) if n_envs_input else 4

        if choice == "1":
            train_with_ppo(config, n_envs=n_envs)
            model_path = f"{models_dir}ppo_final"
        elif choice == "2":
            train_with_recurrent_ppo(config, n_envs=n_envs)
            model_path = f"{models_dir}recurrent_ppo_final"
        else:
            train_with_sac(config, n_envs=n_envs)
            model_path = f"{models_dir}sac_final"

        test = input("\nTest the trained model? (y/n): ").strip().lower()
        if test == 'y':
            test_trained_model(model_path, config, num_episodes=3)

    else:
        print("Invalid choice. Exiting.")
